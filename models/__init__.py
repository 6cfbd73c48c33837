"""Wire schemas for external services."""
