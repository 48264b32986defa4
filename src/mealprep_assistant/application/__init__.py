"""Use cases and application-level errors."""
