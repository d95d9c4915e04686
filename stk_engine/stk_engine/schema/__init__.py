"""Built-in entity kinds and trigger rules."""
