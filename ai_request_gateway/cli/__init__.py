"""Command-line tooling for gateway operators."""
