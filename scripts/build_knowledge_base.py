#!/usr/bin/env python3
"""
scripts/build_knowledge_base.py - Build the document index and FAQ list
=======================================================================

Reads the curated knowledge directory, chunks every markdown source,
validates faq.json, and writes the request-time artifacts:

    rag_artifacts/
    ├── documents.json    # One entry per chunk (id, title, url, content, ...)
    ├── faqs.json         # Validated FAQ entries
    └── guardrails.txt    # Guardrail notes, for reference only

Usage:
    python scripts/build_knowledge_base.py
    python scripts/build_knowledge_base.py --knowledge-dir knowledge --output-dir rag_artifacts

Chunk sizes come from KB_CHUNK_MAX_CHARS / KB_CHUNK_OVERLAP_CHARS.
Nothing is written if any input is invalid.

Run scripts/build_rag_embeddings.py afterwards to refresh the embeddings.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import CHUNK_MAX_CHARS, CHUNK_OVERLAP_CHARS, KNOWLEDGE_DIR, RAG_ARTIFACTS_DIR
from rag.knowledge import build_knowledge, save_knowledge


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Build the knowledge base artifacts")
    parser.add_argument("--knowledge-dir", type=Path, default=KNOWLEDGE_DIR,
                        help=f"Directory with markdown sources (default: {KNOWLEDGE_DIR})")
    parser.add_argument("--output-dir", type=Path, default=RAG_ARTIFACTS_DIR,
                        help=f"Where to write the artifacts (default: {RAG_ARTIFACTS_DIR})")
    parser.add_argument("--max-chars", type=int, default=CHUNK_MAX_CHARS,
                        help="Maximum characters per chunk")
    parser.add_argument("--overlap-chars", type=int, default=CHUNK_OVERLAP_CHARS,
                        help="Maximum characters of overlap between chunks")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    print("=" * 60)
    print("PROJECT CYSTEM - Building Knowledge Base")
    print("=" * 60)
    print(f"📁 Knowledge: {args.knowledge_dir}")
    print(f"   Chunking: max {args.max_chars} chars, overlap {args.overlap_chars} chars")

    try:
        build = build_knowledge(args.knowledge_dir, args.max_chars, args.overlap_chars)
    except ValueError as e:
        print(f"❌ Build failed: {e}")
        return 1

    output_dir = Path(args.output_dir)
    save_knowledge(
        build,
        documents_path=output_dir / "documents.json",
        faqs_path=output_dir / "faqs.json",
        guardrails_path=output_dir / "guardrails.txt",
    )

    print(f"✅ Built {len(build.documents)} chunks -> {output_dir / 'documents.json'}")
    print(f"✅ Built {len(build.faqs)} FAQs -> {output_dir / 'faqs.json'}")
    print(f"✅ Wrote guardrails -> {output_dir / 'guardrails.txt'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
