"""
Core modules for the AI request gateway.

This package contains prompt templates, the request cache, pricing, quality
validation, usage tracking and the orchestrator that composes them.
"""
