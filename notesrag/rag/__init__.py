"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Delimited note stream parsing
- Note body normalization
- Windowing with overlap
- FAISS vector indexing
- Ingestion and semantic retrieval
"""
