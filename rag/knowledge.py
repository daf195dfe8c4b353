"""
rag/knowledge.py - Knowledge base build and artifact loading
============================================================

Turns the curated knowledge directory into the artifacts read at request
time:

    knowledge/                       rag_artifacts/
    ├── *.md            ──chunk──>   ├── documents.json   (one entry per chunk)
    ├── faq.json        ──validate─> ├── faqs.json
    └── guardrails.md   ──strip───>  └── guardrails.txt   (informational)

The build is all-or-nothing: every input is processed and validated in
memory first, and files are only written once everything succeeded.
"""

import json
import logging
import tempfile
from dataclasses import dataclass, field, asdict
from pathlib import Path

from config import (
    CHUNK_MAX_CHARS,
    CHUNK_OVERLAP_CHARS,
    DOCUMENTS_PATH,
    FAQS_PATH,
    GUARDRAILS_PATH,
    KNOWLEDGE_DIR,
)
from core.errors import KnowledgeValidationError
from core.faq import FaqEntry, parse_faqs
from rag.chunker import (
    chunk_text,
    estimate_tokens,
    parse_frontmatter,
    slugify,
    strip_markdown,
)

logger = logging.getLogger(__name__)

FAQ_FILENAME = "faq.json"
GUARDRAILS_FILENAME = "guardrails.md"


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class Document:
    """
    One retrievable chunk of a knowledge source.

    Attributes:
        id: "<slug of source file name>-<1-based chunk index>"
        title: Source title, suffixed "(Part n)" when the source has several chunks
        url: Canonical URL from the source header ("" when absent)
        content: Cleaned chunk text
        section: Source file name without extension
        tags: Tags from the source header
        token_estimate: Approximate token count of `content`
    """
    id: str
    title: str
    url: str
    content: str
    section: str
    tags: list = field(default_factory=list)
    token_estimate: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        """
        Raises:
            KeyError, TypeError, ValueError: Missing id or a field of the wrong type
        """
        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise TypeError(f"document {data.get('id')!r}: tags must be a list")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            url=str(data.get("url") or ""),
            content=str(data.get("content") or ""),
            section=str(data.get("section") or ""),
            tags=[str(t) for t in tags],
            token_estimate=int(data.get("token_estimate") or 0),
        )


@dataclass
class KnowledgeBuild:
    """Everything produced by one build pass, not yet written to disk."""
    documents: list
    faqs: list
    guardrails: str


# =============================================================================
# DOCUMENTS
# =============================================================================

def source_files(knowledge_dir: Path) -> list[Path]:
    """Markdown sources in file-name order (the guardrail notes are excluded)."""
    return sorted(
        (p for p in knowledge_dir.glob("*.md") if p.name != GUARDRAILS_FILENAME),
        key=lambda p: p.name,
    )


def documents_from_source(path: Path, max_chars: int = CHUNK_MAX_CHARS,
                          overlap_chars: int = CHUNK_OVERLAP_CHARS) -> list[Document]:
    """Chunk one markdown source into Documents."""
    meta, body = parse_frontmatter(path.read_text(encoding="utf-8"))
    clean_body = strip_markdown(body)
    if not clean_body:
        return []

    base_name = path.stem
    title = meta.get("title") or base_name.replace("_", " ")
    url = meta.get("source_url", "")
    tags = [t.strip() for t in meta.get("tags", "").split(",") if t.strip()]
    base_id = slugify(base_name)

    chunks = chunk_text(clean_body, max_chars, overlap_chars)
    return [
        Document(
            id=f"{base_id}-{index}",
            title=f"{title} (Part {index})" if len(chunks) > 1 else title,
            url=url,
            content=chunk,
            section=base_name,
            tags=list(tags),
            token_estimate=estimate_tokens(chunk),
        )
        for index, chunk in enumerate(chunks, start=1)
    ]


def build_documents(knowledge_dir: Path = KNOWLEDGE_DIR,
                    max_chars: int = CHUNK_MAX_CHARS,
                    overlap_chars: int = CHUNK_OVERLAP_CHARS) -> list[Document]:
    """
    Chunk every knowledge source.

    Raises:
        KnowledgeValidationError: If the knowledge directory does not exist
    """
    knowledge_dir = Path(knowledge_dir)
    if not knowledge_dir.is_dir():
        raise KnowledgeValidationError(f"Missing knowledge directory: {knowledge_dir}")

    documents = []
    for path in source_files(knowledge_dir):
        docs = documents_from_source(path, max_chars, overlap_chars)
        logger.debug("%s -> %d chunk(s)", path.name, len(docs))
        documents.extend(docs)
    return documents


# =============================================================================
# FAQ AND GUARDRAIL NOTES
# =============================================================================

def build_faqs(knowledge_dir: Path = KNOWLEDGE_DIR) -> list[FaqEntry]:
    """Load and validate knowledge/faq.json. A missing file means no FAQs."""
    faq_path = Path(knowledge_dir) / FAQ_FILENAME
    if not faq_path.exists():
        return []
    try:
        raw = json.loads(faq_path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise KnowledgeValidationError(f"{faq_path} is not valid JSON: {e}") from e
    return parse_faqs(raw)


def build_guardrails(knowledge_dir: Path = KNOWLEDGE_DIR) -> str:
    path = Path(knowledge_dir) / GUARDRAILS_FILENAME
    if not path.exists():
        return ""
    _, body = parse_frontmatter(path.read_text(encoding="utf-8"))
    return strip_markdown(body)


def build_knowledge(knowledge_dir: Path = KNOWLEDGE_DIR,
                    max_chars: int = CHUNK_MAX_CHARS,
                    overlap_chars: int = CHUNK_OVERLAP_CHARS) -> KnowledgeBuild:
    """Run the whole build in memory. Nothing is written."""
    return KnowledgeBuild(
        documents=build_documents(knowledge_dir, max_chars, overlap_chars),
        faqs=build_faqs(knowledge_dir),
        guardrails=build_guardrails(knowledge_dir),
    )


# =============================================================================
# FILE I/O
# =============================================================================

def _write_temp(text: str, path: Path) -> Path:
    """Write `text` to a uniquely named file next to `path` and return its path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent,
        prefix=f"{path.name}.", suffix=".tmp", delete=False,
    )
    tmp_path = Path(handle.name)
    try:
        with handle:
            handle.write(text)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return tmp_path


def _to_json(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def write_json_atomic(data, path: Path) -> None:
    """Write JSON next to `path` first, then move it into place."""
    path = Path(path)
    tmp_path = _write_temp(_to_json(data), path)
    try:
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def save_knowledge(build: KnowledgeBuild,
                   documents_path: Path = DOCUMENTS_PATH,
                   faqs_path: Path = FAQS_PATH,
                   guardrails_path: Path = GUARDRAILS_PATH) -> None:
    """
    Write all three artifacts. Every file is staged before any is moved into
    place, so a failed write leaves the previous artifacts untouched.
    """
    outputs = [
        (_to_json([d.to_dict() for d in build.documents]), Path(documents_path)),
        (_to_json([f.to_dict() for f in build.faqs]), Path(faqs_path)),
        (build.guardrails, Path(guardrails_path)),
    ]
    staged = []
    try:
        for text, path in outputs:
            staged.append((_write_temp(text, path), path))
    except OSError:
        for tmp_path, _ in staged:
            tmp_path.unlink(missing_ok=True)
        raise

    for tmp_path, path in staged:
        tmp_path.replace(path)


def _load_json(path: Path, fallback):
    if not path.exists():
        return fallback
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Failed to load %s: %s", path, e)
        return fallback


def load_documents(path: Path = DOCUMENTS_PATH) -> list[Document]:
    """Load documents.json. Missing or unreadable files give an empty list; bad items are skipped."""
    raw = _load_json(Path(path), [])
    if not isinstance(raw, list):
        logger.warning("%s must contain an array; ignoring it", path)
        return []
    documents = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("id"):
            logger.warning("Skipping document without an id in %s", path)
            continue
        try:
            documents.append(Document.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed document in %s: %s", path, e)
    return documents


def load_faqs(path: Path = FAQS_PATH) -> list[FaqEntry]:
    """Load the validated faqs.json written by the build."""
    raw = _load_json(Path(path), [])
    try:
        return parse_faqs(raw)
    except KnowledgeValidationError as e:
        logger.warning("Ignoring invalid FAQ artifact %s: %s", path, e)
        return []
