"""Hosted text-completion client (Gemini REST API).

The rest of the code only sees ``CompletionClient.complete``; routes get a
client through the ``get_completion_client`` dependency so tests can swap in
a deterministic fake.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional, Protocol

import httpx

from labinsight.utils.exceptions import ExternalServiceError

logger = logging.getLogger("labinsight")

GEMINI_API_KEY = (os.getenv("GEMINI_API_KEY", "") or "").strip()
GEMINI_MODEL = (os.getenv("GEMINI_MODEL") or "gemini-2.5-flash").strip()
GEMINI_TIMEOUT_SECONDS = float(os.getenv("GEMINI_TIMEOUT_SECONDS", "20") or 20)
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class CompletionClient(Protocol):
    async def complete(self, prompt: str, max_tokens: int = 1000, temperature: float = 0.0) -> str:
        ...


def _response_text(data: Dict[str, Any]) -> str:
    return (
        data.get("candidates", [{}])[0]
        .get("content", {})
        .get("parts", [{}])[0]
        .get("text", "")
        or ""
    ).strip()


class GeminiClient:
    def __init__(self, api_key: str, model: str = GEMINI_MODEL, timeout_s: float = GEMINI_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s

    async def complete(self, prompt: str, max_tokens: int = 1000, temperature: float = 0.0) -> str:
        started = time.perf_counter()
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt.strip()}]}],
            "generationConfig": {"maxOutputTokens": max_tokens, "temperature": temperature},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                r = await client.post(
                    GEMINI_URL.format(model=self.model),
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
                r.raise_for_status()
                text = _response_text(r.json())
        except httpx.TimeoutException as exc:
            raise ExternalServiceError("LLM request timed out", {"model": self.model}) from exc
        except (httpx.HTTPError, ValueError, IndexError, AttributeError) as exc:
            raise ExternalServiceError("LLM request failed", {"model": self.model, "reason": str(exc)}) from exc
        finally:
            logger.info({
                "function": "llm_complete",
                "model": self.model,
                "max_tokens": max_tokens,
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 1),
            })
        return text


def get_completion_client() -> Optional[CompletionClient]:
    """FastAPI dependency; None when no API key is configured."""
    if not GEMINI_API_KEY:
        return None
    return GeminiClient(GEMINI_API_KEY)
