"""Consistency analysis and reports."""
