"""Command-line interface for the event relay."""
