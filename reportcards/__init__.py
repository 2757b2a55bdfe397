"""Report card generation, packaging and sharing pipeline."""
