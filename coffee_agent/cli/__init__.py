"""Coffee Agent CLI."""
