"""Prompt construction for document-grounded answers."""

from typing import List, Optional, Sequence

from docchat.core.config import settings
from docchat.core.constants import ANSWER_HEADINGS, UNTITLED_SECTION
from docchat.schemas.retrieval import RetrievedChunk
from docchat.services.categories import GENERAL, category_label, prompt_focus

DOCUMENT_LANE, MISSING_LANE, GENERAL_LANE, WHERE_LANE = ANSWER_HEADINGS

CONTEXT_SEPARATOR = "\n\n---\n\n"

NOT_FOUND_CONTEXT = "(no passages from the document matched this question)"


def citation(page_number: int, section_title: Optional[str]) -> str:
    """Inline citation for a page and section, e.g. ``[p3, "Rent"]``."""
    return f'[p{page_number}, "{section_title or UNTITLED_SECTION}"]'


def build_system_prompt(filename: str, category: Optional[str]) -> str:
    """System prompt for one chat turn over a single document.

    Args:
        filename: Name of the document being discussed
        category: Detected document category (``general`` when unknown)

    Returns:
        The system prompt text
    """
    category = category or GENERAL
    lines = [
        f'You answer questions about one document: "{filename}".',
        f"Detected document category: {category_label(category)} ({category}).",
        "",
        "Reply using exactly these four markdown headings, in this order:",
        *ANSWER_HEADINGS,
        "",
        f"Rules for {DOCUMENT_LANE}:",
        f'- Every sentence must end with a citation of the form {citation(7, "Section title")}, '
        "taken from the page and section labels of the context blocks.",
        "- Only state what a context block directly supports. If a claim is not supported by "
        "a context block, leave it out of this section entirely.",
        "- Do not use outside knowledge, assumptions or typical practice in this section.",
        "- Quote numbers, dates and amounts exactly as the document gives them.",
        "",
        f"Rules for {MISSING_LANE}:",
        "- List each part of the question the context does not answer, or answers ambiguously.",
        "- Anything you left out of the document section for lack of support belongs here.",
        "",
        f"Rules for {GENERAL_LANE}:",
        "- General background that may help the reader, clearly not drawn from the document.",
        "- Never put page or section citations in this section and never present it as "
        "what the document says.",
        "",
        f"Rules for {WHERE_LANE}:",
        "- Point to the pages and sections most worth reading for this question.",
        "",
        "If the context contains nothing relevant, say under "
        f"{DOCUMENT_LANE} that the document does not appear to cover the question, "
        "and do not invent an answer.",
    ]

    focus = prompt_focus(category)
    if category != GENERAL and focus:
        lines.append("")
        lines.append(f"When reading a {category_label(category)} document, pay particular attention to:")
        lines.extend(f"- {item}" for item in focus)

    return "\n".join(lines)


def render_context(chunks: Sequence[RetrievedChunk], max_blocks: Optional[int] = None) -> str:
    """Number and label the retrieved chunks for the model."""
    max_blocks = max_blocks or settings.CONTEXT_MAX_BLOCKS
    blocks = [
        f'[#{n}] p{chunk.page_number} :: "{chunk.section_title}"\n{chunk.content}'
        for n, chunk in enumerate(chunks[:max_blocks], start=1)
    ]
    return CONTEXT_SEPARATOR.join(blocks)


def build_user_prompt(question: str, chunks: Sequence[RetrievedChunk]) -> str:
    context = render_context(chunks) if chunks else NOT_FOUND_CONTEXT
    return f"Context from the document:\n\n{context}\n\nQuestion: {question}"


def context_citation_keys(chunks: Sequence[RetrievedChunk], max_blocks: Optional[int] = None) -> List[str]:
    max_blocks = max_blocks or settings.CONTEXT_MAX_BLOCKS
    return [c.metadata.get("citation_key") for c in chunks[:max_blocks] if c.metadata.get("citation_key")]
