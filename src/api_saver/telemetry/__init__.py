"""Telemetry capture: records, sinks and the recorder."""
