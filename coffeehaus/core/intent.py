"""Query intent classification: does the user name a venue or browse an area?"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from openai import OpenAI

from coffeehaus.core.config import get_settings

logger = logging.getLogger(__name__)

SPECIFIC = "specific"
GENERAL = "general"
INTENTS = (SPECIFIC, GENERAL)

DEFAULT_TTL_SECONDS = 24 * 60 * 60

INTENT_PROMPT = """\
Analyze this coffee shop search query and determine if the user is looking for:

1. A SPECIFIC coffee shop (like "Blue Bottle Coffee", "Joe Coffee Company", \
"Starbucks on 5th Ave", "that cafe with the red door")
2. GENERAL coffee shops in an area (like "coffee near me", "best cafes", \
"cheap coffee", "coffee shops open late")

Query: "{query}"

Respond with just one word: "specific" or "general"."""


@dataclass(frozen=True)
class IntentConfig:
    api_key: str = ""
    model: str = "gpt-4o-mini"
    timeout: float = 10.0
    max_tokens: int = 10
    enabled: bool = True


class IntentCache:
    """Process-wide query -> intent cache with expiry checked on read.

    Keys are case-insensitive and whitespace-trimmed. There is no eviction
    beyond TTL-on-read, so the map grows with the number of distinct queries.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def normalize(query: str) -> str:
        return (query or "").strip().lower()

    def get(self, query: str) -> Optional[str]:
        key = self.normalize(query)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            intent, stored_at = entry
            if self._clock() - stored_at < self._ttl:
                return intent
            del self._entries[key]
        return None

    def set(self, query: str, intent: str) -> None:
        with self._lock:
            self._entries[self.normalize(query)] = (intent, self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class IntentClassifier:
    """Classify queries as ``specific`` or ``general`` via an LLM.

    Any failure or unexpected reply yields ``general``: a broken classifier
    makes search less precise but never blocks it.
    """

    def __init__(
        self,
        config: IntentConfig,
        cache: Optional[IntentCache] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        self._config = config
        self._cache = cache if cache is not None else IntentCache()
        self._client = client
        if self._client is None and config.enabled and config.api_key:
            self._client = OpenAI(api_key=config.api_key, timeout=config.timeout, max_retries=0)

    @property
    def cache(self) -> IntentCache:
        return self._cache

    def classify(self, query: str) -> str:
        if self._client is None:
            return GENERAL

        try:
            response = self._client.chat.completions.create(
                model=self._config.model,
                messages=[{"role": "user", "content": INTENT_PROMPT.format(query=query)}],
                max_tokens=self._config.max_tokens,
                temperature=0,
            )
            content = (response.choices[0].message.content or "").strip().lower()
        except Exception:
            logger.warning("Intent classification failed for query=%s, defaulting to general", query, exc_info=True)
            return GENERAL

        if content in INTENTS:
            return content
        logger.info("Unrecognised intent reply %r for query=%s, defaulting to general", content, query)
        return GENERAL

    def classify_cached(self, query: str) -> str:
        cached = self._cache.get(query)
        if cached is not None:
            return cached
        intent = self.classify(query)
        self._cache.set(query, intent)
        return intent


def build_classifier() -> IntentClassifier:
    settings = get_settings()
    config = IntentConfig(
        api_key=settings.openai_api_key,
        model=settings.intent_model,
        timeout=settings.provider_timeout,
    )
    return IntentClassifier(config, cache=IntentCache(ttl=settings.intent_cache_ttl))
