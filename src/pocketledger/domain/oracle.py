"""Categorization oracle: the external LLM treated as a fallible function.

The core only needs ``generate(prompt, inline_file) -> raw text``. GeminiOracle
talks to the Gemini ``generateContent`` REST endpoint over httpx with a
bounded timeout and a single retry on transient failures.
"""

import base64
import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from pocketledger.domain.errors import OracleError, OracleErrorKind

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)

# Status codes worth a second attempt
RETRYABLE_STATUS = {429, 500, 502, 503, 504}

_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class InlineFile:
    """File bytes passed to the oracle alongside the prompt."""

    data: bytes
    mime_type: str


class CancelToken:
    """Cooperative cancellation flag shared between a caller and a request."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Oracle(ABC):
    """Abstract extraction/categorization oracle."""

    @abstractmethod
    def generate(self, prompt: str, inline_file: Optional[InlineFile] = None) -> str:
        """Return the oracle's raw text answer.

        Raises:
            OracleError: NOT_CONFIGURED or UNAVAILABLE
        """
        pass


def strip_code_fences(raw: str) -> str:
    """Remove surrounding ``` or ```json markup from an oracle answer."""
    return _FENCE.sub("", raw.strip()).strip()


def parse_json_response(raw: str) -> Any:
    """Strip fences and parse the oracle answer as JSON.

    Raises:
        OracleError: MALFORMED_RESPONSE if the text is not valid JSON
    """
    text = strip_code_fences(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Oracle returned invalid JSON: {text[:200]!r}")
        raise OracleError(
            OracleErrorKind.MALFORMED_RESPONSE, f"Oracle response is not valid JSON: {e}"
        )


class GeminiOracle(Oracle):
    """Gemini REST client."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-1.5-flash",
        timeout: float = 30.0,
        retries: int = 1,
        temperature: float = 0.2,
        max_output_tokens: int = 8192,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the Gemini oracle.

        Args:
            api_key: Gemini API key; None or empty means not configured
            model: Gemini model name
            timeout: Per-request timeout in seconds
            retries: Extra attempts after a transient failure
            temperature: Sampling temperature
            max_output_tokens: Response size cap
            client: Optional pre-built httpx client (used by tests)
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.retries = retries
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _body(self, prompt: str, inline_file: Optional[InlineFile]) -> dict:
        parts: list[dict] = [{"text": prompt}]
        if inline_file is not None:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": inline_file.mime_type,
                        "data": base64.b64encode(inline_file.data).decode(),
                    }
                }
            )
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": self.temperature,
                "topK": 32,
                "topP": 1,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    def _post(self, url: str, body: dict) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, json=body, params={"key": self.api_key})
        with httpx.Client(timeout=self.timeout) as c:
            return c.post(url, json=body, params={"key": self.api_key})

    def generate(self, prompt: str, inline_file: Optional[InlineFile] = None) -> str:
        if not self.configured:
            raise OracleError(
                OracleErrorKind.NOT_CONFIGURED,
                "Gemini API key is not configured (set GEMINI_API_KEY)",
            )

        url = GEMINI_ENDPOINT.format(model=self.model)
        body = self._body(prompt, inline_file)
        attempts = 1 + max(self.retries, 0)
        last_error = ""

        for attempt in range(1, attempts + 1):
            try:
                resp = self._post(url, body)
            except httpx.TransportError as e:
                last_error = f"transport error: {e}"
                logger.warning(f"Gemini attempt {attempt}/{attempts} failed: {last_error}")
                continue

            if resp.status_code in RETRYABLE_STATUS:
                last_error = f"HTTP {resp.status_code}"
                logger.warning(f"Gemini attempt {attempt}/{attempts} failed: {last_error}")
                continue
            if not resp.is_success:
                logger.error(f"Gemini error {resp.status_code}: {resp.text[:300]}")
                raise OracleError(
                    OracleErrorKind.UNAVAILABLE,
                    f"Gemini request failed with HTTP {resp.status_code}",
                )
            return self._candidate_text(resp)

        raise OracleError(
            OracleErrorKind.UNAVAILABLE,
            f"Gemini unavailable after {attempts} attempt(s): {last_error}",
        )

    @staticmethod
    def _candidate_text(resp: httpx.Response) -> str:
        try:
            data = resp.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise OracleError(
                OracleErrorKind.MALFORMED_RESPONSE, "Gemini response carried no candidate text"
            )
        if not isinstance(text, str) or not text.strip():
            raise OracleError(
                OracleErrorKind.MALFORMED_RESPONSE, "Gemini response carried no candidate text"
            )
        return text
