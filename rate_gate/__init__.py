"""Sliding-window request-rate admission control for FastAPI services."""
