"""Subtitle translation queue worker backed by external CLI translators."""

__version__ = "0.1.0"
