"""Spec-driven feature workflow engine."""
