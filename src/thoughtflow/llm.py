"""
LLM client for Thoughtflow.

Structured-JSON calls to the external classifier.
Supports both Anthropic and OpenAI-compatible APIs.
"""

import json
import logging
import os
from typing import Any, Protocol

import httpx

from thoughtflow.config import load_config
from thoughtflow.errors import ClassifierError, ConfigError

logger = logging.getLogger(__name__)

# Default models for each provider
DEFAULT_MODELS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
}

ANTHROPIC_VERSION = "2023-06-01"


class ClassifierClient(Protocol):
    """Anything that can answer a prompt pair with a JSON object."""

    def complete_json(
        self,
        developer_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ) -> dict[str, Any]:
        ...


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove first line (```json)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def parse_json_body(text: str | None) -> dict[str, Any]:
    """Parse a model reply into a JSON object or raise ClassifierError."""
    if not text or not text.strip():
        raise ClassifierError(ClassifierError.MALFORMED, "empty response")

    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ClassifierError(ClassifierError.MALFORMED, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ClassifierError(
            ClassifierError.MALFORMED, f"expected JSON object, got {type(data).__name__}"
        )
    return data


class LLMClient:
    """HTTP adapter to the structured-output classifier."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.config = config or load_config()
        self.llm_config = self.config.get("llm", {})
        self.transport = transport

        self.provider = self.llm_config.get("provider", "openai")
        self.timeout = float(self.llm_config.get("timeout_seconds", 10.0))

        # Get API key based on provider
        if self.provider == "anthropic":
            self.api_key = (
                self.llm_config.get("anthropic_api_key")
                or os.environ.get("ANTHROPIC_API_KEY")
            )
            self.model = self.llm_config.get("model", DEFAULT_MODELS["anthropic"])
            self.base_url = self.llm_config.get("base_url", "https://api.anthropic.com/v1")
            if not self.api_key:
                raise ConfigError(
                    "Anthropic API key not found. Set ANTHROPIC_API_KEY env var or add to config."
                )
        else:  # openai
            self.api_key = (
                self.llm_config.get("openai_api_key")
                or os.environ.get("OPENAI_API_KEY")
            )
            self.model = self.llm_config.get("model", DEFAULT_MODELS["openai"])
            self.base_url = self.llm_config.get("base_url", "https://api.openai.com/v1")
            if not self.api_key:
                raise ConfigError(
                    "OpenAI API key not found. Set OPENAI_API_KEY env var or add to config."
                )

    def complete_json(
        self,
        developer_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ) -> dict[str, Any]:
        """
        Send one structured request and return the parsed JSON body.

        Raises ClassifierError with kind timeout, network or malformed.
        """
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                if self.provider == "anthropic":
                    text = self._call_anthropic(
                        client, developer_prompt, user_prompt, temperature, max_tokens
                    )
                else:
                    text = self._call_openai(
                        client, developer_prompt, user_prompt, temperature, max_tokens
                    )
        except httpx.TimeoutException as e:
            raise ClassifierError(ClassifierError.TIMEOUT, str(e) or "request timed out") from e
        except httpx.HTTPStatusError as e:
            raise ClassifierError(
                ClassifierError.NETWORK, f"HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ClassifierError(ClassifierError.NETWORK, str(e)) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            # Envelope did not have the shape the provider documents
            raise ClassifierError(ClassifierError.MALFORMED, f"unexpected envelope: {e}") from e

        return parse_json_body(text)

    def _call_anthropic(
        self,
        client: httpx.Client,
        developer_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Call Anthropic API."""
        response = client.post(
            f"{self.base_url}/messages",
            headers={
                "x-api-key": self.api_key,
                "Content-Type": "application/json",
                "anthropic-version": ANTHROPIC_VERSION,
            },
            json={
                "model": self.model,
                "max_tokens": max_tokens,
                "system": developer_prompt,
                "messages": [{"role": "user", "content": user_prompt}],
                "temperature": temperature,
            },
        )
        response.raise_for_status()
        return response.json()["content"][0]["text"]

    def _call_openai(
        self,
        client: httpx.Client,
        developer_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Call OpenAI API."""
        response = client.post(
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "messages": [
                    {"role": "developer", "content": developer_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": temperature,
                "max_tokens": max_tokens,
                "response_format": {"type": "json_object"},
            },
        )
        response.raise_for_status()
        return response.json()["choices"][0]["message"]["content"]


def has_api_key(config: dict[str, Any]) -> bool:
    """Check whether the configured provider has a key available."""
    llm_config = config.get("llm", {})
    if llm_config.get("provider", "openai") == "anthropic":
        return bool(llm_config.get("anthropic_api_key") or os.environ.get("ANTHROPIC_API_KEY"))
    return bool(llm_config.get("openai_api_key") or os.environ.get("OPENAI_API_KEY"))


def create_client(config: dict[str, Any] | None = None) -> LLMClient | None:
    """Build an LLMClient, or None when no API key is configured."""
    config = config or load_config()
    try:
        return LLMClient(config)
    except ConfigError as e:
        logger.warning("Classifier unavailable, using keyword fallback only: %s", e)
        return None
