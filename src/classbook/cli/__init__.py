"""Command-line interface for classbook."""
