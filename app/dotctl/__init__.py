"""dotctl - Declarative dotfiles convergence."""

__version__ = "0.1.0"
