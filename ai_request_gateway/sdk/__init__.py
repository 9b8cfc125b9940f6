"""
SDK for the AI request gateway.

Provides the application-facing operations and the OpenAI provider.
"""

from .openai_client import OpenAIProvider
from .operations import AIOperations, ClusterIssue, build_gateway, create_operations

__all__ = ["AIOperations", "ClusterIssue", "OpenAIProvider", "build_gateway", "create_operations"]
