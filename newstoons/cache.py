# cache.py
import re
import threading
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

from .config import IMAGE_CACHE_TTL
from .models import CartoonConcept, CartoonImage

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Process-local store whose entries expire ``ttl`` seconds after ``set``.

    Stale entries are only evicted when read.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, Tuple[T, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            data, stored_at = entry
            if self.clock() - stored_at < self.ttl:
                return data
            del self._entries[key]
            return None

    def set(self, key: str, data: T) -> None:
        with self._lock:
            self._entries[key] = (data, self.clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class ImageCache(TTLCache[CartoonImage]):
    """Generated images keyed by concept title, kept for an hour."""

    def __init__(self, ttl: float = IMAGE_CACHE_TTL, clock: Callable[[], float] = time.time):
        super().__init__(ttl, clock)

    @staticmethod
    def build_key(concept: CartoonConcept) -> str:
        return "image_" + re.sub(r"\s+", "_", concept.title).lower()

    def get_image(self, concept: CartoonConcept) -> Optional[CartoonImage]:
        return self.get(self.build_key(concept))

    def set_image(self, concept: CartoonConcept, image: CartoonImage) -> None:
        self.set(self.build_key(concept), image)
