"""Desktop agent pairing, credentials and activity ingestion service."""

__version__ = "1.0.0"
