# gemini.py
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from .config import API_KEY, GEMINI_BASE_URL, HTTP_TIMEOUT, IMAGE_MODEL, TEXT_MODEL
from .errors import ConfigError, TransportError
from .parsers import response_text

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
RETRY_DELAY = 1.0  # seconds, doubled per retry

# ------------------ GENAI WRAPPER ----------------


class GAIC:
    """Thin REST client for the two generateContent endpoints we use.

    Transport failures and non-2xx statuses are retried with exponential
    backoff; an error envelope inside a 2xx body is not.
    """

    def __init__(self, api_key: Optional[str] = None, text_model: str = TEXT_MODEL,
                 image_model: str = IMAGE_MODEL, base_url: str = GEMINI_BASE_URL,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 timeout: float = HTTP_TIMEOUT):
        self.api_key = API_KEY if api_key is None else api_key
        self.text_model = text_model
        self.image_model = image_model
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.sleep = sleep
        self.timeout = timeout

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/models/{model}:generateContent"

    # Text planning
    def call_text_api(self, prompt: str) -> Dict[str, Any]:
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        return self._post(self.endpoint(self.text_model), body)

    # Image rendering
    def call_vision_api(self, prompt: str) -> Dict[str, Any]:
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["IMAGE"]},
        }
        return self._post(self.endpoint(self.image_model), body)

    def generate_text(self, prompt: str) -> str:
        return response_text(self.call_text_api(prompt)).strip()

    def _post(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigError("Gemini API key not configured. Set GEMINI_API_KEY in .env")

        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}
        retry = 0
        while True:
            status = None
            try:
                resp = self.session.post(url, json=body, headers=headers, timeout=self.timeout)
                status = resp.status_code
                if 200 <= status < 300:
                    break
                error = TransportError(f"HTTP {status}: {resp.reason} - {resp.text[:500]}", status)
            except requests.RequestException as e:
                error = TransportError(f"Request to {url} failed: {e}", status)

            if retry >= MAX_RETRIES:
                logger.error("Giving up after %d retries: %s", retry, error)
                raise error
            delay = RETRY_DELAY * (2 ** retry)
            logger.warning("%s; retrying in %.1fs (%d/%d)", error, delay, retry + 1, MAX_RETRIES)
            self.sleep(delay)
            retry += 1

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(f"Response from {url} was not JSON: {e}", status) from e
        if not isinstance(data, dict):
            raise TransportError(f"Unexpected response body from {url}", status)

        if isinstance(data.get("error"), dict):
            err = data["error"]
            raise TransportError(f"API Error: {err.get('message', 'unknown error')}", err.get("code") or status)
        return data
