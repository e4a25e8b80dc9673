"""Evaluate the health of contributed projects hosted on drupal.org."""

__version__ = "0.1.0"
