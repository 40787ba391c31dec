"""Service implementations for the data propagation domain."""
