"""Error types and pydantic result models."""
