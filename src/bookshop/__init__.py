"""bookshop: in-memory bookstore backend with simulated payments."""

__version__ = "0.1.0"
