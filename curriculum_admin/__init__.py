"""Curriculum structure administration."""
