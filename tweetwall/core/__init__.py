"""Core data types, errors and the bounded event buffer."""
