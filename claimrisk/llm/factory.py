"""
LLM Provider factory.
"""

from typing import Optional

from claimrisk.llm import LLMProvider


def get_provider(provider_name: Optional[str] = None) -> LLMProvider:
    """Factory — returns the configured LLM provider."""
    if provider_name is None:
        from claimrisk.config import settings
        provider_name = settings.LLM_PROVIDER
    if provider_name == "gemini":
        from claimrisk.llm.gemini import GeminiProvider
        return GeminiProvider()
    raise ValueError(f"Unknown LLM provider: {provider_name}")
