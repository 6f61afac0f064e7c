"""Core domain models, enums and errors."""
