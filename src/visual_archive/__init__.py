"""Visual Archive: batch image ingest into an object-storage backed catalog."""

__version__ = "0.1.0"
