"""Core reconciliation engine for dotctl."""
