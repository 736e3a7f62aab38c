"""AIVenger - credit-metered AI superhero avatar generation."""

__version__ = "0.1.0"

__all__ = ["__version__"]
