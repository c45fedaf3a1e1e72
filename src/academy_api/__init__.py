"""
academy_api

Top-level package for the multi-tenant academy (e-learning and certification) API.

Responsibilities:
- Expose package version metadata.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
