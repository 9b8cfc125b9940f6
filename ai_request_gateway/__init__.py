"""
AI Request Gateway.

Caches, prices, quality-gates and accounts for calls to an LLM provider.
"""

__version__ = "0.1.0"
