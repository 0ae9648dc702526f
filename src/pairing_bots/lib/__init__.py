"""Configuration, logging, telemetry and error types."""
