"""Indexing pipeline: sync loop, batches, reorg pruning and discovery."""
