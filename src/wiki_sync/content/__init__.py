"""Document content helpers: Markdown normalization, slugs, version history."""
