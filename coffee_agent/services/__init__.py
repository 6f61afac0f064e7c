"""Application services for Coffee Agent."""
