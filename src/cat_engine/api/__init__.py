"""API — FastAPI router, schemas and exception handlers."""

__all__: list[str] = []
