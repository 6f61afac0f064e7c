"""Coffee Agent - green coffee catalog sync, AI enrichment and semantic indexing."""

__version__ = "0.1.0"
