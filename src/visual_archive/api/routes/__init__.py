"""HTTP routers for the archive service."""
