"""Application detection for dotctl."""
