"""Dotfiles repository synchronization for dotctl."""
