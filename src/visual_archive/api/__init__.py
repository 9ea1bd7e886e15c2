"""FastAPI surface of the archive service."""
