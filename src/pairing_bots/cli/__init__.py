"""Command-line interface for pairing-bots."""
