"""DeepSeek chat-completions summarizer adapter.

Implements the core SummarizerPort. Any transport or payload problem is
raised as SummarizerError so the digest layer can fall back to its local
report.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from typing import Any, Optional

from core.digest import SYSTEM_PROMPT

DEFAULT_API_URL = "https://api.deepseek.com/v1/chat/completions"
DEFAULT_MODEL = "deepseek-chat"


class SummarizerError(RuntimeError):
    """The summarization service failed or returned an unusable response."""


class DeepSeekSummarizer:
    """Summarizer adapter that calls an OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = 30.0,
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._timeout = timeout_seconds
        self._max_tokens = max_tokens
        self._temperature = temperature

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._api_url, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        request.add_header("Authorization", f"Bearer {self._api_key}")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")
            raise SummarizerError(f"Summarizer API error {e.code}: {detail}") from e
        except (urllib.error.URLError, OSError) as e:
            raise SummarizerError(f"Summarizer request failed: {e}") from e
        try:
            return json.loads(body)
        except ValueError as e:
            raise SummarizerError("Summarizer returned invalid JSON") from e

    async def summarize(self, prompt: str) -> str:
        """Return the model's digest text for the prompt."""

        # urllib is blocking; run it off the event loop so Telethon stays responsive.
        result = await asyncio.to_thread(self._post, self._payload(prompt))
        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise SummarizerError("Summarizer response has no message content") from e
        if not isinstance(content, str) or not content.strip():
            raise SummarizerError("Summarizer returned an empty message")
        return content


def build_summarizer(
    api_key: Optional[str],
    api_url: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    timeout_seconds: float = 30.0,
) -> Optional[DeepSeekSummarizer]:
    """Return a summarizer, or None when no API key is configured."""

    if not api_key:
        return None
    return DeepSeekSummarizer(
        api_key=api_key,
        api_url=api_url or DEFAULT_API_URL,
        model=model,
        timeout_seconds=timeout_seconds,
    )
