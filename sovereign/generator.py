from __future__ import annotations

import http.client
import json
import logging
import math
import time
import urllib.error
import urllib.request

from sovereign.models import Rank

logger = logging.getLogger(__name__)


class ContentGenerationError(RuntimeError):
    pass


class ContentGenerator:
    def generate_quest_content(self, context: dict) -> dict:
        """Return ``{"title", "description", "rewards", "difficulty"}`` or raise ContentGenerationError."""
        raise NotImplementedError


class NullContentGenerator(ContentGenerator):
    def generate_quest_content(self, context: dict) -> dict:
        raise ContentGenerationError("no content generator configured")


def _validate(payload) -> dict:
    if not isinstance(payload, dict):
        raise ContentGenerationError("generator returned a non-object payload")
    title = payload.get("title")
    description = payload.get("description")
    if not isinstance(title, str) or not title.strip() or not isinstance(description, str):
        raise ContentGenerationError("generator payload is missing title/description")
    difficulty = payload.get("difficulty")
    if difficulty not in {r.value for r in Rank}:
        difficulty = None
    rewards = payload.get("rewards")
    if not isinstance(rewards, dict):
        rewards = {}
    rewards = {
        k: int(v)
        for k, v in rewards.items()
        if k in ("xp", "gold") and isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
    }
    return {"title": title.strip(), "description": description.strip(), "rewards": rewards, "difficulty": difficulty}


class HttpContentGenerator(ContentGenerator):
    max_attempts = 2

    def __init__(self, url: str, timeout_s: float = 8.0, api_key: str = "") -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.api_key = api_key

    def generate_quest_content(self, context: dict) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        req = urllib.request.Request(
            self.url,
            data=json.dumps(context).encode("utf-8"),
            headers=headers,
            method="POST",
        )
        for attempt in range(1, self.max_attempts + 1):
            try:
                with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                    payload = json.loads(resp.read().decode("utf-8"))
                return _validate(payload)
            except (urllib.error.URLError, http.client.HTTPException, TimeoutError, OSError, ValueError) as exc:
                if attempt >= self.max_attempts:
                    logger.warning("Content generation failed after retries: %s", exc)
                    raise ContentGenerationError(str(exc)) from exc
                time.sleep(0.25 * attempt)
        raise ContentGenerationError("content generation was not attempted")


def build_generator(url: str = "", timeout_s: float = 8.0, api_key: str = "") -> ContentGenerator:
    if url:
        return HttpContentGenerator(url, timeout_s=timeout_s, api_key=api_key)
    return NullContentGenerator()


def generate_content(generator: ContentGenerator, context: dict) -> dict | None:
    """Ask ``generator`` for content; None means the caller keeps its fallback.

    Any generator implementation may be plugged in, so every failure it
    raises is logged here and every payload is validated again.
    """
    try:
        return _validate(generator.generate_quest_content(context))
    except Exception as exc:
        logger.warning("Content generator failed for %s, using fallback: %r", context.get("kind", "content"), exc)
        return None
