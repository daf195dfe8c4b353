#!/usr/bin/env python3
"""
scripts/build_rag_embeddings.py - Build the embedding index
============================================================

Embeds every chunk in rag_artifacts/documents.json with the OpenAI
embeddings API and writes rag_artifacts/embeddings.json.

Chunks whose title and content are unchanged since the last run reuse
their previous vectors, so re-running after a small edit only embeds the
edited chunks. Batches are sent one at a time (KB_EMBED_BATCH_SIZE
texts each). If any batch fails, nothing is written.

Usage:
    export OPENAI_API_KEY="sk-..."
    python scripts/build_rag_embeddings.py
"""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")

from config import (
    DOCUMENTS_PATH,
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_BUILD_TIMEOUT,
    EMBEDDING_MODEL,
    EMBEDDINGS_PATH,
    OPENAI_API_KEY,
)
from core.errors import ConfigurationError, ProviderError
from rag.embeddings import build_embedding_index, load_embedding_index, save_embedding_index
from rag.knowledge import load_documents
from rag.providers import OpenAIEmbeddingProvider


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Build the embedding index for documents.json")
    parser.add_argument("--documents", type=Path, default=DOCUMENTS_PATH,
                        help=f"Document index to embed (default: {DOCUMENTS_PATH})")
    parser.add_argument("--output", type=Path, default=EMBEDDINGS_PATH,
                        help=f"Embedding index to write (default: {EMBEDDINGS_PATH})")
    parser.add_argument("--batch-size", type=int, default=EMBEDDING_BATCH_SIZE,
                        help="Texts per embedding request")
    return parser.parse_args(argv)


def main(argv=None, provider=None) -> int:
    args = parse_args(argv)

    print("=" * 60)
    print("PROJECT CYSTEM - Building Embedding Index")
    print("=" * 60)

    if provider is None:
        if not OPENAI_API_KEY:
            print("❌ OPENAI_API_KEY is required.")
            return 1
        provider = OpenAIEmbeddingProvider(model=EMBEDDING_MODEL, timeout=EMBEDDING_BUILD_TIMEOUT)

    if not args.documents.exists():
        print(f"❌ Missing file: {args.documents}")
        print("   Run 'python scripts/build_knowledge_base.py' first.")
        return 1

    documents = load_documents(args.documents)
    if not documents:
        print(f"❌ {args.documents} must contain at least one document.")
        return 1

    print(f"📄 Documents: {len(documents)}")
    print(f"🔢 Model: {provider.model_id}, batch size {args.batch_size}")

    try:
        index = build_embedding_index(
            documents,
            provider,
            previous=load_embedding_index(args.output),
            batch_size=args.batch_size,
            progress=print,
        )
    except (ProviderError, ConfigurationError) as e:
        print(f"❌ Embedding build failed, nothing written: {e}")
        return 1

    save_embedding_index(index, args.output)
    print(f"💾 Saved {len(index)} embeddings -> {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
