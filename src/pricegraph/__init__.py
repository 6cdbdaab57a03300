"""pricegraph: resolution and validation engine for pricing configuration graphs."""

__version__ = "0.1.0"
