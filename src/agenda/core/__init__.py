"""Process-wide infrastructure: structured logging and metrics."""
