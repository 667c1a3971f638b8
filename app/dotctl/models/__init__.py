"""Data models for dotctl."""
