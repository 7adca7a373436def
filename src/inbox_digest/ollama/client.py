"""Ollama client implementation.

This module provides a client for interacting with Ollama LLM.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from typing import Any, Optional

import structlog

from inbox_digest.config import Settings
from inbox_digest.exceptions import OllamaConnectionError, OllamaInferenceError

logger = structlog.get_logger()


class OllamaClient:
    """Ollama LLM client for AI inference.

    This client handles communication with the Ollama API
    for language model inference tasks.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize Ollama client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from inbox_digest.config import get_settings

        self.settings = settings or get_settings()
        logger.info(
            "ollama_client_initialized",
            host=self.settings.ollama_host,
            model=self.settings.ollama_model,
        )

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        system: Optional[str] = None,
    ) -> str:
        """Generate text using Ollama.

        Args:
            prompt: The prompt to send to the model.
            model: Model name to use. If None, uses default from settings.
            system: Optional system prompt.

        Returns:
            The generated response text.

        Raises:
            OllamaConnectionError: If unable to connect to Ollama.
            OllamaInferenceError: If inference fails.
        """
        model = model or self.settings.ollama_model
        logger.info("generating_text", model=model, prompt_length=len(prompt))

        payload: dict[str, Any] = {"model": model, "prompt": prompt, "stream": False}
        if system:
            payload["system"] = system

        data = await asyncio.to_thread(self._post, "/api/generate", payload)
        response = data.get("response")
        if not isinstance(response, str):
            raise OllamaInferenceError("Ollama generate response missing 'response'")
        return response.strip()

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        host = self.settings.ollama_host.rstrip("/")
        req = urllib.request.Request(
            url=f"{host}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self.settings.ollama_timeout) as resp:  # noqa: S310
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            logger.error("ollama_request_rejected", path=path, status=exc.code)
            raise OllamaInferenceError(f"Ollama returned HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            logger.error("ollama_unreachable", host=host, error=str(exc))
            raise OllamaConnectionError(f"Unable to reach Ollama at {host}: {exc}") from exc

        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise OllamaInferenceError("Ollama returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise OllamaInferenceError("Ollama returned an unexpected payload")
        return data
