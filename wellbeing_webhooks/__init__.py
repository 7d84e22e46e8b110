"""Webhook ingestion service for wellbeing data pushed by the Sahha platform.

Receives signed provider events, merges them into per-subject aggregates kept
in a JSON file on disk, and offers read-only reporting over that file.
"""

__version__ = "0.1.0"
