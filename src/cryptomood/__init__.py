"""Hourly crypto market sentiment analysis over recently collected tweets."""

__version__ = "1.0.0"
