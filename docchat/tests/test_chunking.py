import pytest

from docchat.core.exceptions import ChunkingError
from docchat.schemas.pipeline import Page
from docchat.services.ingestion.chunking import (
    SemanticChunker,
    citation_key,
    classify_chunk_type,
    is_heading,
    normalize_text,
    split_sections,
)


def _words(prefix: str, count: int) -> str:
    return " ".join(f"{prefix}{i}" for i in range(count))


@pytest.fixture
def chunker():
    return SemanticChunker(target_words=400, overlap_words=50)


def test_900_word_section_yields_three_overlapping_chunks(chunker):
    page = Page(index=0, text="# Terms\n\n" + _words("w", 900))

    drafts = chunker.chunk_pages([page], "notes.pdf")

    assert len(drafts) == 3
    first, second, third = (d.content.split() for d in drafts)
    assert second[:50] == first[-50:]
    assert third[:50] == second[-50:]
    assert all(len(words) <= 400 for words in (first, second, third))
    # every source word is covered
    assert set(first) | set(second) | set(third) == {f"w{i}" for i in range(900)}


def test_paragraph_packing_closes_before_exceeding_target(chunker):
    paragraphs = "\n\n".join(_words(f"p{n}_", 100) for n in range(9))
    drafts = chunker.chunk_pages([Page(index=0, text=paragraphs)], "notes.pdf")

    assert len(drafts) == 3
    assert len(drafts[0].content.split()) == 400
    assert drafts[1].content.split()[:50] == drafts[0].content.split()[-50:]


def test_chunk_order_is_contiguous_from_one_across_pages(chunker):
    pages = [
        Page(index=0, text="# Definitions\n\n" + _words("a", 450) + "\n\n# Rent\n\n" + _words("b", 120)),
        Page(index=1, text=_words("c", 30) + "\n\n## Deposit\n\n" + _words("d", 800)),
        Page(index=2, text=""),
        Page(index=3, text="ARTICLE IV Termination\n" + _words("e", 60)),
    ]

    drafts = chunker.chunk_pages(pages, "lease.pdf")

    assert [d.chunk_order for d in drafts] == list(range(1, len(drafts) + 1))
    assert drafts[-1].metadata.page_number == 4
    assert drafts[-1].metadata.section_title == "ARTICLE IV Termination"


def test_untitled_text_continues_previous_section(chunker):
    pages = [
        Page(index=0, text="# Rent\n\nRent is due on the first day of each month."),
        Page(index=1, text="Late payments incur a fee of fifty dollars."),
    ]

    drafts = chunker.chunk_pages(pages, "lease.pdf")

    assert [d.metadata.section_title for d in drafts] == ["Rent", "Rent"]
    assert drafts[1].metadata.page_number == 2
    assert drafts[1].metadata.citation_key == "2_Rent"


def test_untitled_first_page_uses_body_title(chunker):
    drafts = chunker.chunk_pages([Page(index=0, text="Plain text with no headings at all.")], "notes.pdf")

    assert drafts[0].metadata.section_title == "Body"
    assert drafts[0].metadata.citation_key == "1_Body"


def test_citation_key_is_stable_across_rechunking(chunker):
    pages = [Page(index=2, text="## Section 4.2 Pets\n\nNo pets are allowed without written consent.")]

    first = chunker.chunk_pages(pages, "lease.pdf")
    second = SemanticChunker(target_words=200, overlap_words=20).chunk_pages(pages, "lease.pdf")

    assert first[0].metadata.citation_key == second[0].metadata.citation_key == citation_key(3, "Section 4.2 Pets")
    assert citation_key(3, "Section 4.2 Pets") == "3_Section_4_2_Pets"


def test_chunk_metadata_fields(chunker):
    page = Page(index=0, text="# Definitions\n\n\"Premises\" means the apartment at 12 Oak Street.")

    draft = chunker.chunk_pages([page], "lease.pdf")[0]

    assert draft.metadata.chunk_type == "definition"
    assert draft.metadata.detected_category == "realestate"
    assert draft.metadata.token_count > 0
    assert len(draft.metadata.content_hash) == 40


def test_zero_chunks_is_an_error(chunker):
    with pytest.raises(ChunkingError):
        chunker.chunk_pages([Page(index=0, text="   "), Page(index=1, text="")], "empty.pdf")


def test_overlap_must_be_smaller_than_target():
    with pytest.raises(ValueError):
        SemanticChunker(target_words=50, overlap_words=50)


@pytest.mark.parametrize("title,content,expected", [
    ("Definitions", "", "definition"),
    ("Overview", "The word Tenant shall mean the occupant.", "definition"),
    ("Section 5", "Payment is due monthly.", "clause"),
    ("Term of Lease", "Twelve months.", "clause"),
    ("Document Title", "Residential lease.", "header"),
    ("Overview", "Welcome to the building.", "general"),
])
def test_classify_chunk_type(title, content, expected):
    assert classify_chunk_type(title, content) == expected


def test_split_sections_recognizes_heading_styles():
    text = "Preamble line\n# Parties\nAlice and Bob\nARTICLE II Rent\nRent text\nSection 3.1 Deposit\nDeposit text"

    sections = split_sections(text)

    assert sections == [
        (None, "Preamble line"),
        ("Parties", "Alice and Bob"),
        ("ARTICLE II Rent", "Rent text"),
        ("Section 3.1 Deposit", "Deposit text"),
    ]


def test_normalize_text_joins_hyphenated_wraps():
    assert normalize_text("the land-\nlord shall\r\nrepair") == "the landlord shall\nrepair"


@pytest.mark.parametrize("line,expected", [
    ("## Section 4.2 Pets", True),
    ("Section 4.2 Pets", True),
    ("ARTICLE IV Termination", True),
    ("Section 4.2 hereof, the Tenant shall keep no animals", False),
    ("Section 4.2 applies to every occupant of the premises.", False),
    ("Section 9 sets out the remedies available to the Landlord if the Tenant defaults on rent", False),
    ("The tenant pays rent", False),
])
def test_is_heading(line, expected):
    assert is_heading(line) == expected


def test_wrapped_sentence_starting_with_section_stays_in_body(chunker):
    text = (
        "## Pets\n\nNo animals are allowed unless permitted under\n"
        "Section 4.2 hereof, the Tenant shall obtain written consent.\nGuide dogs are exempt."
    )

    drafts = chunker.chunk_pages([Page(index=0, text=text)])

    assert [d.metadata.section_title for d in drafts] == ["Pets"]
    assert "Section 4.2 hereof, the Tenant shall obtain written consent." in drafts[0].content
    assert "Guide dogs are exempt." in drafts[0].content
