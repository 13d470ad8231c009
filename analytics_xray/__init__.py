"""Capture and inspect analytics events sent by web pages."""

__version__ = "0.1.0"
