"""Telemetry events and progress reporting."""
