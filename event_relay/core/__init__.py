"""Core configuration and persistence building blocks."""
