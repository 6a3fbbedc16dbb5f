"""Credit-metered skip-tracing and data enrichment service."""

__version__ = "0.1.0"
