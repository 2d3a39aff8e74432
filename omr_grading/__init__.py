"""
Ingest tracking, duplicate detection and grading for scanned OMR sheets.
"""

__version__ = "0.1.0"
