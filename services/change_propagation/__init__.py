"""Change propagation: CDC events in, projection writes out."""
