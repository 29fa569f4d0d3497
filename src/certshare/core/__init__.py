"""Core infrastructure: configuration, logging, partitioning, retry and clock."""
