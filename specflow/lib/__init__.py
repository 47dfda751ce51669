"""Parsers, configuration and shared types."""
