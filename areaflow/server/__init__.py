"""AreaFlow REST server (FastAPI)."""
