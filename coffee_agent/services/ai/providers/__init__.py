"""Generative-text provider implementations."""
