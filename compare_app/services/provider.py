"""Generative text provider client, prompt templates and output parsing."""

import json
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from compare_app.core.logging import logger

SYSTEM_PROMPT = """You are Alex, a friendly and knowledgeable personal shopping expert.
Your personality is: enthusiastic, helpful, honest, and conversational.
Provide unbiased comparisons with specific recommendations.
Format responses clearly with bullet points when helpful."""

COMPARISON_SCHEMA = """{
  "product1": {
    "name": "Exact product name with model",
    "price": "$X,XXX",
    "rating": 4.5,
    "pros": ["Specific advantage 1", "Specific advantage 2", "Specific advantage 3"],
    "cons": ["Specific limitation 1", "Specific limitation 2", "Specific limitation 3"],
    "specs": {"Display": "...", "Processor": "...", "Memory": "...", "Battery": "...", "Special Features": "..."}
  },
  "product2": { ...same shape as product1... },
  "verdict": "Which product wins overall and why (2-3 sentences)",
  "recommendation": "Who should buy which (3-4 sentences)"
}"""

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}


class ProviderError(Exception):
    """The provider call failed or returned nothing usable."""


class MalformedPayload(ProviderError):
    """Provider output did not contain a JSON object."""


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str:
        ...


def _format_history(history: Sequence[Dict[str, Any]], window: int) -> str:
    if window <= 0:
        return ""
    recent = list(history)[-window:]
    return "\n\n".join(
        f"{m.get('role', 'user')}: {m.get('content', '')}" for m in recent
    )


def build_comparison_prompt(
    product1: str,
    product2: str,
    history: Sequence[Dict[str, Any]] = (),
    window: int = 5,
) -> str:
    """Prompt asking for a structured JSON comparison of two products."""
    context = _format_history(history, window)
    context_block = f"\nConversation so far:\n{context}\n" if context else ""
    return (
        f"{SYSTEM_PROMPT}\n"
        f"{context_block}\n"
        f"Compare {product1} vs {product2}.\n\n"
        "Provide ONLY valid JSON in this exact format with realistic, current market data:\n"
        f"{COMPARISON_SCHEMA}\n\n"
        "Be specific with model numbers, specifications and prices. "
        "No markdown, no text before or after the JSON."
    )


def build_chat_prompt(
    message: str,
    history: Sequence[Dict[str, Any]] = (),
    window: int = 5,
) -> str:
    """Free-form prompt used when the query does not name two products."""
    context = _format_history(history, window)
    return (
        f"{SYSTEM_PROMPT}\n\nContext:\n{context}\n\nUser: {message}\n\n"
        "Assistant: Provide helpful product comparison advice. If the user isn't "
        "asking about comparisons, guide them towards comparing products."
    )


def extract_payload(text: Optional[str]) -> Dict[str, Any]:
    """
    Return the first well-formed JSON object embedded in ``text``.

    Models often wrap JSON in prose or markdown fences, so every ``{`` is tried
    as a start position until one decodes to an object.
    """
    if not text:
        raise MalformedPayload("Empty provider response")
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except ValueError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    raise MalformedPayload("No valid JSON object found in provider response")


class GeminiProvider:
    """Synchronous client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def generate(self, prompt: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": GENERATION_CONFIG,
        }
        try:
            response = self.client.post(url, params={"key": self.api_key}, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"Provider returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Provider request failed: {e}") from e

        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            logger.warning(f"Unexpected provider response shape: {str(data)[:200]}")
            raise ProviderError("Provider response had no candidate text") from e
        if not text:
            raise ProviderError("Provider returned empty text")
        return text

    def close(self) -> None:
        self.client.close()
