"""Configuration, mapping decisions, slicing, dynamic targets and run watching for adaptive sampling."""

__version__ = "0.1.0"