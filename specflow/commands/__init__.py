"""Command implementations for the feature CLI."""
