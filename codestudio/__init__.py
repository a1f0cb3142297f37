"""Code Studio: web code editor backend for GitHub repositories."""

__version__ = "1.0.0"
