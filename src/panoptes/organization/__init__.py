"""Naming, collision resolution and rename execution."""
