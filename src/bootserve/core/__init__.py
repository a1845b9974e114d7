"""Core enums and state tables."""
