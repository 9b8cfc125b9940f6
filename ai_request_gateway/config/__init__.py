"""Startup configuration for the gateway."""
