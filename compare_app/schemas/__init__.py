"""Request/response schemas and orchestration outcomes."""
