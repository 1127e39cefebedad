"""Portuguese Parliament open-data pipeline."""

__version__ = "0.1.0"
