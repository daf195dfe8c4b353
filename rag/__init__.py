"""
rag/ - Knowledge base build and retrieval
=========================================

- chunker.py: Markdown cleaning and character-based chunking
- knowledge.py: Document index / FAQ build and artifact loading
- embeddings.py: Embedding index build with content-hash reuse
- providers.py: OpenAI embedding and answer-generation providers
- retrieval.py: Vector and keyword retrieval
"""
