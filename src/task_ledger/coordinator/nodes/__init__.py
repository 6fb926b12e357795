"""Coordinator graph nodes."""
