"""Local ingestion and data-quality checks for sales-analytics CSV data."""

__version__ = "0.1.0"
