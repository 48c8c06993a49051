"""Domain rows and form schemas."""
