"""Study material ingestion and content generation engine."""

__version__ = "0.1.0"
