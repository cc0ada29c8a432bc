"""Reasoning oracle: the text-completion service that proposes and judges moves.

``Oracle`` is the seam the decision loops depend on. ``GeminiOracle``
talks to Google Gemini through google-genai; tests substitute a
scripted implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from google import genai
from google.genai import types

from strategist.log import get_logger

logger = get_logger(__name__)


class OracleError(Exception):
    """The oracle could not produce a response (network, timeout, empty reply)."""


class Oracle(ABC):
    """A natural-language completion service."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 400,
    ) -> str:
        """Return the completion text for a prompt.

        Raises:
            OracleError: On any failure to obtain non-empty text.
        """


class GeminiOracle(Oracle):
    """Oracle backed by the Gemini API."""

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        api_key: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Create the Gemini client.

        Args:
            model: Gemini model name.
            api_key: API key. If None, google-genai reads GEMINI_API_KEY /
                GOOGLE_API_KEY from the environment.
            timeout: Per-request timeout in seconds.
        """
        self._model = model
        try:
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            )
        except ValueError as exc:
            # Raised by google-genai when no API key can be found
            raise OracleError(f"Gemini client unavailable: {exc}") from exc

    @property
    def model(self) -> str:
        return self._model

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 400,
    ) -> str:
        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
            max_output_tokens=max_tokens,
        )
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=[prompt],
                config=config,
            )
        except Exception as exc:
            # SDK, HTTP and timeout failures all surface as OracleError
            raise OracleError(f"Gemini request failed: {exc}") from exc

        text = response.text
        if not text or not text.strip():
            raise OracleError("Gemini returned an empty response")
        logger.debug("Oracle reply (%d chars): %.200s", len(text), text)
        return text.strip()
