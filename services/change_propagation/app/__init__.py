"""Change propagation service."""
