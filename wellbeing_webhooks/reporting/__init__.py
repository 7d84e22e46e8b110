"""Read-only reporting over the persisted aggregate store."""
