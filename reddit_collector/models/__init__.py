"""Raw Reddit payload models and normalized output records."""
