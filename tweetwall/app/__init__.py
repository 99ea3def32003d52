"""Process-level wiring of the relay."""
