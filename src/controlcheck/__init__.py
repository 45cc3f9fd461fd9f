"""Control Check - AI-assisted compliance analysis of documents against control frameworks."""

__version__ = "1.0.0"
