"""Heading-aware, word-budgeted chunking of OCR page text."""

import hashlib
import logging
import re
from typing import Iterable, List, Optional, Tuple

import tiktoken

from docchat.core.config import settings
from docchat.core.constants import UNTITLED_SECTION
from docchat.core.exceptions import ChunkingError
from docchat.schemas.pipeline import ChunkDraft, ChunkMetadata, Page
from docchat.services.categories import GENERAL, detect_category

logger = logging.getLogger(__name__)

# Pages used for the document-level category
CATEGORY_SAMPLE_PAGES = 5

HEADING_REGEX = re.compile(
    r"^(?:#{1,6}\s+\S.*|ARTICLE\s+[IVXLC\d]+\b.*|Section\s+\d+(?:\.\d+)*\b.*)$",
    re.IGNORECASE,
)
MARKDOWN_HEADING_PREFIX = re.compile(r"^#{1,6}\s+")
HYPHENATED_WRAP = re.compile(r"(\w)-\n(\w)")
PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
HEADING_MAX_WORDS = 12


def normalize_text(text: str) -> str:
    """Join hyphenated line wraps and normalize line endings."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return HYPHENATED_WRAP.sub(r"\1\2", text).strip()


def citation_key(page_number: int, section_title: Optional[str]) -> str:
    """Stable citation key for a page and section."""
    slug = re.sub(r"[^a-z0-9]+", "_", section_title or UNTITLED_SECTION, flags=re.IGNORECASE)
    return f"{page_number}_{slug}"[:100]


def classify_chunk_type(title: str, content: str) -> str:
    lower_title = (title or "").lower()
    lower_content = (content or "").lower()

    if "definition" in lower_title or "means" in lower_content or "shall mean" in lower_content:
        return "definition"
    if any(term in lower_title for term in ("clause", "section", "article", "term")):
        return "clause"
    if "header" in lower_title or "title" in lower_title:
        return "header"
    return "general"


def is_heading(line: str) -> bool:
    """Markdown headings always count. ``ARTICLE``/``Section`` lines count only when
    they are short and carry no sentence punctuation."""
    if not HEADING_REGEX.match(line):
        return False
    if MARKDOWN_HEADING_PREFIX.match(line):
        return True
    return not (
        "," in line
        or line.endswith((".", ";"))
        or len(line.split()) > HEADING_MAX_WORDS
    )


def split_sections(text: str) -> List[Tuple[Optional[str], str]]:
    """Split page text at heading lines.

    Returns ``(title, body)`` pairs. Text before the first heading has a title of
    ``None``.
    """
    sections: List[Tuple[Optional[str], List[str]]] = [(None, [])]
    for line in text.split("\n"):
        stripped = line.strip()
        if stripped and is_heading(stripped):
            title = MARKDOWN_HEADING_PREFIX.sub("", stripped).strip()
            sections.append((title, []))
        else:
            sections[-1][1].append(line)

    return [(title, "\n".join(lines).strip()) for title, lines in sections if title or "\n".join(lines).strip()]


def split_paragraphs(body: str) -> List[str]:
    """Blank-line delimited paragraphs with inner whitespace collapsed."""
    return [" ".join(p.split()) for p in PARAGRAPH_BREAK.split(body) if p.strip()]


class SemanticChunker:
    """Splits OCR pages into overlapping chunks.

    Each page is split into sections at heading lines; each section's
    paragraphs are packed into chunks of at most ``target_words`` words. When a
    chunk closes, its last ``overlap_words`` words seed the next chunk of the
    same section. Chunk order is global across the document and starts at 1.
    """

    def __init__(
        self,
        target_words: Optional[int] = None,
        overlap_words: Optional[int] = None,
        model: Optional[str] = None,
    ):
        """Initialize the chunker.

        Args:
            target_words: Maximum words per chunk
            overlap_words: Words carried over from the previous chunk
            model: Model to use for token counting
        """
        self.target_words = target_words or settings.CHUNK_TARGET_WORDS
        self.overlap_words = settings.CHUNK_OVERLAP_WORDS if overlap_words is None else overlap_words
        if self.overlap_words >= self.target_words:
            raise ValueError("overlap_words must be smaller than target_words")
        self.model = model or settings.TOKENIZER_MODEL

        try:
            self.tokenizer = tiktoken.encoding_for_model(self.model)
        except Exception as e:
            logger.warning(f"Failed to load tokenizer for {self.model}: {e}. Using cl100k_base instead.")
            self.tokenizer = tiktoken.get_encoding("cl100k_base")

    def count_tokens(self, text: str) -> int:
        return len(self.tokenizer.encode(text))

    def _units(self, paragraphs: Iterable[str]) -> Iterable[List[str]]:
        """Paragraphs as word lists; long paragraphs become fixed windows that
        still fit next to an overlap seed."""
        max_unit = self.target_words - self.overlap_words
        for paragraph in paragraphs:
            words = paragraph.split()
            for start in range(0, len(words), max_unit):
                yield words[start:start + max_unit]

    def _pack(self, body: str) -> List[str]:
        """Pack one section body into chunk texts."""
        chunks: List[str] = []
        buffer: List[str] = []
        fresh = 0  # words added since the last chunk closed

        for unit in self._units(split_paragraphs(body)):
            if fresh and len(buffer) + len(unit) > self.target_words:
                chunks.append(" ".join(buffer))
                buffer = buffer[-self.overlap_words:] if self.overlap_words else []
                fresh = 0
            buffer.extend(unit)
            fresh += len(unit)

        if fresh:
            chunks.append(" ".join(buffer))
        return chunks

    def chunk_pages(self, pages: List[Page], filename: str = "") -> List[ChunkDraft]:
        """Chunk a document's pages.

        Args:
            pages: OCR pages in document order
            filename: Document filename, used for category detection

        Returns:
            Chunks in order

        Raises:
            ChunkingError: when no chunk could be produced
        """
        ordered = sorted(pages, key=lambda p: p.index)
        sample = "\n\n".join(p.text for p in ordered[:CATEGORY_SAMPLE_PAGES])
        document_category = detect_category(filename, sample)

        drafts: List[ChunkDraft] = []
        chunk_order = 1
        current_title: Optional[str] = None

        for page in ordered:
            text = normalize_text(page.text or "")
            if not text:
                continue

            for title, body in split_sections(text):
                # Untitled text at the top of a page continues the previous heading
                if title is not None:
                    current_title = title
                if not body:
                    continue

                section_title = current_title or UNTITLED_SECTION
                category = detect_category(filename, body)
                if category == GENERAL:
                    category = document_category
                chunk_type = classify_chunk_type(current_title or "", body)
                key = citation_key(page.page_number, current_title)

                for content in self._pack(body):
                    drafts.append(ChunkDraft(
                        chunk_order=chunk_order,
                        content=content,
                        metadata=ChunkMetadata(
                            page_number=page.page_number,
                            section_title=section_title,
                            detected_category=category,
                            chunk_type=chunk_type,
                            citation_key=key,
                            content_hash=hashlib.sha1(content.encode("utf-8")).hexdigest(),
                            token_count=self.count_tokens(content),
                        ),
                    ))
                    chunk_order += 1

        if not drafts:
            raise ChunkingError("No chunks were created from the document text")

        logger.info(f"Chunked {len(ordered)} pages into {len(drafts)} chunks (category: {document_category})")
        return drafts
