"""
Utility modules for agent system
"""

from .llm_client import GeminiClient

__all__ = ["GeminiClient"]
