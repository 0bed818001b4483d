"""Request telemetry capture and configuration reconciliation."""

__version__ = "0.1.0"
