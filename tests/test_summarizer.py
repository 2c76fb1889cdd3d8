from __future__ import annotations

import asyncio
import io
import json
import urllib.error
import urllib.request

import pytest

from adapters.deepseek_summarizer import DeepSeekSummarizer, SummarizerError, build_summarizer


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _patch_urlopen(monkeypatch, reply=None, error: "Exception | None" = None) -> list:
    captured = []

    def fake_urlopen(request, timeout=None):
        captured.append((request, timeout))
        if error is not None:
            raise error
        return FakeResponse(json.dumps(reply).encode("utf-8"))

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    return captured


def test_summarize_posts_chat_completion(monkeypatch) -> None:
    captured = _patch_urlopen(monkeypatch, {"choices": [{"message": {"content": "## Digest"}}]})
    summarizer = DeepSeekSummarizer("secret-key", "https://example.test/v1/chat", timeout_seconds=5)

    assert asyncio.run(summarizer.summarize("weekly prompt")) == "## Digest"

    request, timeout = captured[0]
    payload = json.loads(request.data.decode("utf-8"))
    assert timeout == 5
    assert request.full_url == "https://example.test/v1/chat"
    assert request.get_header("Authorization") == "Bearer secret-key"
    assert payload["model"] == "deepseek-chat"
    assert payload["messages"][1] == {"role": "user", "content": "weekly prompt"}
    assert payload["max_tokens"] == 2000


def test_missing_content_raises(monkeypatch) -> None:
    _patch_urlopen(monkeypatch, {"choices": []})
    with pytest.raises(SummarizerError):
        asyncio.run(DeepSeekSummarizer("key").summarize("prompt"))


def test_transport_errors_raise(monkeypatch) -> None:
    _patch_urlopen(monkeypatch, error=urllib.error.URLError("unreachable"))
    with pytest.raises(SummarizerError):
        asyncio.run(DeepSeekSummarizer("key").summarize("prompt"))


def test_build_summarizer_without_key() -> None:
    assert build_summarizer(None) is None
    assert build_summarizer("") is None
    assert isinstance(build_summarizer("key"), DeepSeekSummarizer)
