"""Artifact persistence, locking and derived-view cache."""
