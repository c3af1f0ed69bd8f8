"""chunkdex: context-preserving chunking and semantic search for long documents."""
