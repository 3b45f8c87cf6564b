"""Corpus analysis passes: loading, validation, resolution and compliance."""
