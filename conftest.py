"""Global pytest configuration."""

import os

# Deterministic local backends for tests, set before any imports
os.environ.setdefault("LLM_PROVIDER", "stub")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("PINECONE_API_KEY", None)
os.environ.pop("BLOB_STORAGE_DIR", None)
