"""Unit tests for Ollama client."""

import io
import json
import urllib.error
import urllib.request

import pytest

from inbox_digest.exceptions import OllamaConnectionError, OllamaInferenceError
from inbox_digest.ollama.client import OllamaClient


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@pytest.fixture
def captured(monkeypatch):
    """Patch urlopen; return the list of captured requests and a setter for the reply."""

    requests: list[urllib.request.Request] = []
    state = {"body": json.dumps({"response": "  generated text \n"}).encode("utf-8"), "error": None}

    def fake_urlopen(req, timeout=None):
        requests.append(req)
        if state["error"] is not None:
            raise state["error"]
        return _Response(state["body"])

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    return requests, state


class TestOllamaClient:
    """Test suite for OllamaClient class."""

    def test_ollama_client_initialization(self, mock_settings) -> None:
        """Test that Ollama client is properly initialized."""
        client = OllamaClient(mock_settings)

        assert client.settings.ollama_host == "http://test:11434"

    @pytest.mark.asyncio
    async def test_generate_posts_prompt(self, mock_settings, captured) -> None:
        requests, _ = captured

        text = await OllamaClient(mock_settings).generate("Summarize", system="Be brief")

        assert text == "generated text"
        (req,) = requests
        assert req.full_url == "http://test:11434/api/generate"
        assert json.loads(req.data) == {
            "model": "test-model",
            "prompt": "Summarize",
            "stream": False,
            "system": "Be brief",
        }

    @pytest.mark.asyncio
    async def test_unreachable_host_is_connection_error(self, mock_settings, captured) -> None:
        _, state = captured
        state["error"] = urllib.error.URLError("connection refused")

        with pytest.raises(OllamaConnectionError):
            await OllamaClient(mock_settings).generate("x")

    @pytest.mark.asyncio
    async def test_http_error_is_inference_error(self, mock_settings, captured) -> None:
        _, state = captured
        state["error"] = urllib.error.HTTPError(
            "http://test:11434/api/generate", 404, "model not found", {}, None
        )

        with pytest.raises(OllamaInferenceError, match="404"):
            await OllamaClient(mock_settings).generate("x")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"done": true}'])
    async def test_unusable_payload_is_inference_error(self, mock_settings, captured, body) -> None:
        _, state = captured
        state["body"] = body

        with pytest.raises(OllamaInferenceError):
            await OllamaClient(mock_settings).generate("x")
