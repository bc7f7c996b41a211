"""Order fulfillment and checkout settlement engine for restaurants."""

__version__ = "0.1.0"
