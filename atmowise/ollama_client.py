"""Thin client for calling the local Ollama chat API."""

import time

import requests

from atmowise import config
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="ollama_client")


class OllamaClient:
    """Minimal client for the Ollama chat API."""
    def __init__(self, settings: config.Settings | None = None):
        """Initialize client configuration from settings."""
        settings = settings or config.settings
        self.url = f"{settings.ollama_base_url.rstrip('/')}/api/chat"
        self.model = settings.ollama_model
        self.options = settings.ollama_options
        self.timeout = settings.ollama_timeout_seconds
        self.max_retries = max(0, int(settings.ollama_retries))
        self.retry_backoff_sec = float(settings.ollama_retry_backoff_seconds)

    def chat(self, messages):
        """Send a chat request and return the assistant content."""
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "format": "json",
            "options": self.options,
        }

        r = None
        for attempt in range(self.max_retries + 1):
            try:
                r = requests.post(self.url, json=payload, timeout=self.timeout)
                logger.info(
                    "Ollama POST took %.2fs, status %s",
                    r.elapsed.total_seconds(),
                    r.status_code,
                )
            except requests.exceptions.RequestException as exc:
                logger.warning("Ollama POST failed on attempt %d: %s", attempt + 1, exc)
                if attempt < self.max_retries:
                    time.sleep(self.retry_backoff_sec * (attempt + 1))
                    continue
                raise

            if r.status_code == 200:
                break

            error_text = (r.text or "")[:200]
            if (r.status_code >= 500 or "EOF" in error_text) and attempt < self.max_retries:
                logger.warning("Ollama returned %s; retrying (attempt %d/%d).", r.status_code, attempt + 1, self.max_retries + 1)
                time.sleep(self.retry_backoff_sec * (attempt + 1))
                continue
            raise RuntimeError(
                f"Ollama POST failed with status {r.status_code}: {error_text} "
                f"(model={self.model}, url={self.url})"
            )

        try:
            data = r.json()
        except ValueError as exc:
            raise RuntimeError(f"Ollama returned non-JSON response: {r.text[:200]}") from exc
        content = data.get("message", {}).get("content", "")
        # Normalize non-string content to string
        if isinstance(content, (dict, list)):
            content = str(content)
        return content


ollama_client = OllamaClient()
