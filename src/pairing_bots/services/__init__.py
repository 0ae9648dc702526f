"""Orchestration services for pairing runs."""
