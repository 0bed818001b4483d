"""SQLite-backed document storage."""
