"""Configuration reconciliation between memory, file and store."""
