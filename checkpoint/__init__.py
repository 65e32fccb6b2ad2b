"""Pluggable request authentication for Flask applications."""
