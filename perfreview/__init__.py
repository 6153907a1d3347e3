"""Performance review lifecycle and score aggregation."""
__version__ = "1.0.0"
