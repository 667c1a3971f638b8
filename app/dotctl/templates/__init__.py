"""Template rendering for dotctl."""
