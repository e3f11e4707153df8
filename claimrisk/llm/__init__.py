"""
LLM Provider — Abstract Interface

Every text-generation call (full analysis, disambiguation) goes through
this interface. Swap providers by changing CLAIMRISK_LLM_PROVIDER in env.

Providers implement generate(). JSON decoding, including recovery of a
JSON object that the model wrapped in fences or prose, is shared here.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from claimrisk.errors import ProviderError

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> Any:
    """Decode a JSON response, tolerating markdown fences and surrounding prose."""
    cleaned = text.strip()
    fenced = _FENCE_RE.match(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as first_error:
        embedded = _OBJECT_RE.search(cleaned)
        if embedded is None:
            raise ProviderError(
                f"LLM returned invalid JSON: {first_error}. Raw response: {text[:300]}"
            ) from first_error
        try:
            return json.loads(embedded.group(0))
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"LLM returned invalid JSON: {e}. Raw response: {text[:300]}"
            ) from e


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    name: str = "base"

    # Model that produced the most recent response, for the job record
    last_model: Optional[str] = None

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.2,
        json_mode: bool = False,
    ) -> str:
        """Generate a text response from the LLM."""
        ...

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.1,
    ) -> Any:
        """Generate and decode a JSON response. Raises ProviderError on bad JSON."""
        text = await self.generate(
            prompt=prompt,
            system_instruction=system_instruction,
            temperature=temperature,
            json_mode=True,
        )
        return extract_json(text)
