import json
from typing import Any, Dict, List, Optional

import pytest
import requests

from newstoons.models import CartoonConcept, NewsArticle, NewsSource


def text_envelope(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def image_envelope(data: str = "aGVsbG8=", mime: str = "image/png") -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": mime, "data": data}}]}}]}


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, reason: str = "OK", text: Optional[str] = None):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} {self.reason}")


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)


class FakeGemini:
    """Stands in for GAIC; queued items are envelopes or exceptions."""

    def __init__(self, text=None, vision=None):
        self.text = list(text or [])
        self.vision = list(vision or [])
        self.text_prompts: List[str] = []
        self.vision_prompts: List[str] = []

    @staticmethod
    def _pop(queue):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def call_text_api(self, prompt: str):
        self.text_prompts.append(prompt)
        return self._pop(self.text)

    def call_vision_api(self, prompt: str):
        self.vision_prompts.append(prompt)
        return self._pop(self.vision)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def articles():
    return [
        NewsArticle(title="Council votes to ban pigeons from town hall",
                    description="Birds protest by nesting in the mayor's office",
                    url="https://www.theage.com.au/national/victoria/pigeons.html",
                    source=NewsSource(name="The Age")),
        NewsArticle(title="Tram runs on time, commuters baffled",
                    description="Experts call it unprecedented",
                    url="https://www.heraldsun.com.au/news/tram",
                    source=NewsSource(name="Herald Sun")),
        NewsArticle(title="Giant inflatable duck stuck under bridge",
                    url="https://www.abc.net.au/news/duck",
                    source=NewsSource(name="ABC News")),
    ]


@pytest.fixture
def concept():
    return CartoonConcept(title="Pigeon Parliament",
                          premise="Pigeons in suits debate a human ban",
                          why_funny="Role reversal",
                          location="Melbourne")
