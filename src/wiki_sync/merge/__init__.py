"""Three-way merge of AI proposals with human-edited documents."""
