"""
rag/chunker.py - Markdown cleaning and character-based chunking
================================================================

Knowledge documents are markdown files with an optional metadata header:

    ---
    title: Understanding PCOS
    source_url: https://example.org/pcos
    tags: basics, symptoms
    ---
    # Body text...

The chunker strips the markup, splits the body into paragraphs and packs
paragraphs into chunks of at most `max_chars` characters. Consecutive chunks
are linked by a short word-aligned overlap so that retrieval does not lose
sentences that straddle a chunk boundary.
"""

import math
import re

from config import CHUNK_MAX_CHARS, CHUNK_OVERLAP_CHARS

PARAGRAPH_SEPARATOR = "\n\n"


# =============================================================================
# METADATA HEADER
# =============================================================================

def parse_frontmatter(text: str) -> tuple[dict, str]:
    """
    Split a document into its metadata header and body.

    Returns:
        (meta, body). `meta` is empty when the document has no header or
        the header is never closed.
    """
    if not text.startswith("---\n"):
        return {}, text
    end = text.find("\n---\n", 4)
    if end == -1:
        return {}, text

    raw = text[4:end].strip()
    body = text[end + 5:]
    meta = {}
    for line in raw.split("\n"):
        key, sep, value = line.partition(":")
        if not sep:
            continue
        meta[key.strip()] = value.strip()
    return meta, body


# =============================================================================
# TEXT CLEANING
# =============================================================================

_MARKDOWN_RULES = [
    (re.compile(r"```.*?```", re.DOTALL), " "),           # code fences
    (re.compile(r"`[^`]+`"), " "),                         # inline code
    (re.compile(r"!\[[^\]]*\]\([^)]*\)"), " "),            # images
    (re.compile(r"\[([^\]]+)\]\(([^)]+)\)"), r"\1"),       # links -> anchor text
    (re.compile(r"^>\s?", re.MULTILINE), ""),              # blockquotes
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),         # headings
    (re.compile(r"[*_~]"), ""),                            # emphasis
    (re.compile(r"\r"), ""),
    (re.compile(r"\n{3,}"), PARAGRAPH_SEPARATOR),
]


def strip_markdown(text: str) -> str:
    """Remove markdown markup, keeping link anchor text and paragraph breaks."""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def slugify(value: str) -> str:
    """'PCOS_Diet Basics' -> 'pcos-diet-basics'"""
    return re.sub(r"[^a-z0-9]+", "-", str(value or "").lower()).strip("-")


def estimate_tokens(text: str) -> int:
    # Roughly four characters per token for English prose
    return math.ceil(len(text or "") / 4)


# =============================================================================
# CHUNKING
# =============================================================================

def tail_at_word_boundary(text: str, max_chars: int) -> str:
    """
    Return the last `max_chars` characters of `text`, trimmed forward to the
    next word boundary so the tail never starts mid-word.
    """
    if len(text) <= max_chars:
        return text
    tail = text[len(text) - max_chars:]
    first_gap = re.search(r"\s+", tail)
    if first_gap is None:
        return tail
    return tail[first_gap.end():]


def split_paragraphs(text: str) -> list[str]:
    paragraphs = (normalize_whitespace(p) for p in re.split(r"\n{2,}", text))
    return [p for p in paragraphs if p]


def _hard_slice(paragraph: str, max_chars: int, overlap_chars: int) -> list[str]:
    """Cut an oversized paragraph into fixed windows that overlap by `overlap_chars`."""
    windows = []
    start = 0
    while start < len(paragraph):
        end = min(start + max_chars, len(paragraph))
        segment = paragraph[start:end].strip()
        if segment:
            windows.append(segment)
        if end >= len(paragraph):
            break
        start = max(0, end - overlap_chars)
    return windows


def chunk_text(text: str, max_chars: int = CHUNK_MAX_CHARS,
               overlap_chars: int = CHUNK_OVERLAP_CHARS) -> list[str]:
    """
    Pack the paragraphs of an already-cleaned text into bounded chunks.

    Paragraphs are accumulated while the joined buffer fits in `max_chars`.
    When the next paragraph does not fit, the buffer is emitted and the new
    buffer starts with the word-aligned tail of the emitted chunk (at most
    `overlap_chars`) followed by the paragraph. If tail plus paragraph would
    exceed `max_chars`, a shorter tail that fits is used instead; the tail
    is dropped only when there is no room for one at all.

    A paragraph longer than `max_chars` on its own is hard-sliced into
    windows of `max_chars` characters, stepping back `overlap_chars`
    between windows.

    Args:
        text: Cleaned document body (see strip_markdown)
        max_chars: Maximum characters per chunk
        overlap_chars: Maximum characters carried over between chunks

    Returns:
        List of non-empty chunk strings, in document order

    Raises:
        ValueError: If the sizes could never make progress
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap_chars < 0 or overlap_chars >= max_chars:
        raise ValueError("overlap_chars must be >= 0 and smaller than max_chars")

    chunks: list[str] = []
    current = ""

    for paragraph in split_paragraphs(text):
        candidate = f"{current}{PARAGRAPH_SEPARATOR}{paragraph}" if current else paragraph
        if len(candidate) <= max_chars:
            current = candidate
            continue

        if current:
            chunks.append(current)

        if len(paragraph) > max_chars:
            chunks.extend(_hard_slice(paragraph, max_chars, overlap_chars))
            current = ""
            continue

        # Room left for the overlap once the paragraph and separator are in
        budget = min(overlap_chars, max_chars - len(paragraph) - len(PARAGRAPH_SEPARATOR))
        overlap = tail_at_word_boundary(chunks[-1], budget) if chunks and budget > 0 else ""
        current = f"{overlap}{PARAGRAPH_SEPARATOR}{paragraph}" if overlap else paragraph

    if current:
        chunks.append(current)

    return [c.strip() for c in chunks if c.strip()]
