"""katsite - static site builder with subprocess plugins."""

__version__ = "0.3.0"
