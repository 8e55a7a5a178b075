"""Tiergate - tiered access gateway with per-key quotas."""

__version__ = "0.1.0"
