"""Session governance for AI-assisted development in a git repository."""

__version__ = "0.3.0"

__all__ = ["__version__"]
