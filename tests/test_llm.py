import pytest
import requests

from utils import llm


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload


def test_chat_without_api_key_is_unavailable():
    with pytest.raises(llm.LLMUnavailableError):
        llm.chat([{"role": "user", "content": "hi"}])
    assert llm.provider_status() == {"provider": "openai", "status": "unconfigured"}


def test_chat_returns_completion(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    calls = []

    def fake_post(url, headers, json, timeout):
        calls.append((url, json["model"]))
        return FakeResponse({"choices": [{"message": {"content": "  Check your gauges.  "}}]})

    monkeypatch.setattr(llm.requests, "post", fake_post)

    assert llm.chat([{"role": "user", "content": "tip?"}]) == "Check your gauges."
    assert calls == [("https://api.openai.com/v1/chat/completions", "gpt-4o-mini")]


def test_chat_network_error_is_unavailable(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    def failing_post(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(llm.requests, "post", failing_post)

    with pytest.raises(llm.LLMUnavailableError):
        llm.chat([{"role": "user", "content": "tip?"}])
