"""Core engines: transformation, chunking, versioning, extraction, indexing."""
