from docchat.core.constants import ANSWER_HEADINGS
from docchat.schemas.retrieval import RetrievedChunk
from docchat.services.chat.prompts import (
    NOT_FOUND_CONTEXT,
    build_system_prompt,
    build_user_prompt,
    citation,
    context_citation_keys,
    render_context,
)
from docchat.services.categories import prompt_focus


def _chunks(count: int):
    return [
        RetrievedChunk(
            id=f"c{i}",
            document_id="d1",
            content=f"content {i}",
            chunk_order=i,
            similarity=0.5,
            metadata={"page_number": i, "section_title": f"Section {i}", "citation_key": f"{i}_Section_{i}"},
        )
        for i in range(1, count + 1)
    ]


def test_system_prompt_names_document_and_category():
    prompt = build_system_prompt("apartment_lease.pdf", "realestate")

    assert '"apartment_lease.pdf"' in prompt
    assert "Real Estate (realestate)" in prompt


def test_system_prompt_lists_headings_in_order():
    prompt = build_system_prompt("doc.pdf", "general")

    positions = [prompt.index(heading) for heading in ANSWER_HEADINGS]
    assert positions == sorted(positions)


def test_unsupported_claims_are_kept_out_of_document_lane():
    prompt = build_system_prompt("doc.pdf", "general")
    document_rules = prompt.split("Rules for ### From your document:")[1].split("Rules for")[0]
    missing_rules = prompt.split("Rules for ### Missing or unclear from the document:")[1].split("Rules for")[0]

    assert "Every sentence must end with a citation" in document_rules
    assert 'p7, "Section title"' in document_rules
    assert "leave it out of this section entirely" in document_rules
    assert "Do not use outside knowledge" in document_rules
    assert "left out of the document section for lack of support belongs here" in missing_rules


def test_general_lane_forbids_document_citations():
    prompt = build_system_prompt("doc.pdf", "general")
    general_rules = prompt.split("Rules for ### General guidance (non-document):")[1].split("Rules for")[0]

    assert "Never put page or section citations in this section" in general_rules


def test_not_found_instruction_present():
    assert "does not appear to cover the question" in build_system_prompt("doc.pdf", None)


def test_category_focus_only_for_detected_category():
    realestate = build_system_prompt("lease.pdf", "realestate")
    general = build_system_prompt("doc.pdf", "general")

    assert all(f"- {item}" in realestate for item in prompt_focus("realestate"))
    assert "pay particular attention" in realestate
    assert "pay particular attention" not in general


def test_render_context_labels_blocks():
    rendered = render_context(_chunks(2))

    assert rendered == '[#1] p1 :: "Section 1"\ncontent 1\n\n---\n\n[#2] p2 :: "Section 2"\ncontent 2'


def test_render_context_caps_blocks():
    rendered = render_context(_chunks(20))

    assert "[#12]" in rendered
    assert "[#13]" not in rendered
    assert len(context_citation_keys(_chunks(20))) == 12


def test_user_prompt_with_empty_context():
    prompt = build_user_prompt("Is smoking allowed?", [])

    assert NOT_FOUND_CONTEXT in prompt
    assert prompt.endswith("Question: Is smoking allowed?")


def test_citation_format():
    assert citation(3, "Rent") == '[p3, "Rent"]'
    assert citation(1, None) == '[p1, "Body"]'
