"""
Contract for optional text-generation backends and helpers for reading their
output.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

LOGGER = logging.getLogger(__name__)


class TextGenerator(Protocol):
    def generate(self, system_prompt: str, user_prompt: str, max_new_tokens: int = 256) -> str:
        ...


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Best-effort JSON object extraction from model output; None when absent or invalid."""
    if not text:
        return None
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace == -1 or last_brace <= first_brace:
        return None
    snippet = text[first_brace : last_brace + 1]
    try:
        payload = json.loads(snippet)
    except json.JSONDecodeError:
        LOGGER.debug("Failed to parse model output as JSON.", exc_info=True)
        return None
    return payload if isinstance(payload, dict) else None
