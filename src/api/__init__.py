"""HTTP surface for the advisor (FastAPI + SSE)."""
