"""Back up Elasticsearch indices to JSON files and restore them."""

__version__ = "0.1.0"
__all__ = ["__version__"]