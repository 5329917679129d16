"""Application-wide constants."""

# Magic-byte signatures checked on upload, keyed by declared MIME type
FILE_SIGNATURES = {
    "application/pdf": [b"%PDF"],
    "image/jpeg": [b"\xff\xd8\xff"],
    "image/png": [b"\x89PNG"],
}

STORAGE_BUCKET = "documents"
PROCESSING_VERSION = "1.0"

# Heading shown in place of a missing section title
UNTITLED_SECTION = "Body"

# Exact lane headings of a synthesized answer
ANSWER_HEADINGS = (
    "### From your document",
    "### Missing or unclear from the document",
    "### General guidance (non-document)",
    "### Where to look in the document",
)
