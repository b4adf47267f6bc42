"""cat-engine — validation and assessment lifecycle service."""

__version__ = "0.1.0"
