"""Cross-cutting infrastructure: logging and error types."""
