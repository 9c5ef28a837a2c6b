from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request

logger = logging.getLogger(__name__)


class Notifier:
    def send(self, title: str, body: str, priority: str = "normal") -> bool:
        """Deliver one message; False means every attempt failed."""
        raise NotImplementedError


class NoopNotifier(Notifier):
    def send(self, title: str, body: str, priority: str = "normal") -> bool:
        logger.debug("Notification dropped (no channel configured): %s", title)
        return True


class _HttpNotifier(Notifier):
    max_attempts = 3
    timeout_s = 5

    def _send_with_retry(self, req: urllib.request.Request) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                    resp.read()
                return True
            except (urllib.error.URLError, TimeoutError, OSError) as exc:
                if attempt >= self.max_attempts:
                    logger.warning("Notifier send failed after retries: %s", exc)
                    return False
                time.sleep(0.25 * attempt)
        return False


class DiscordNotifier(_HttpNotifier):
    def __init__(self, webhook_url: str) -> None:
        self.webhook_url = webhook_url

    def send(self, title: str, body: str, priority: str = "normal") -> bool:
        prefix = "[!] " if priority == "high" else ""
        payload = {"content": f"**{prefix}{title}**\n{body}"}
        req = urllib.request.Request(
            self.webhook_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        return self._send_with_retry(req)


class NtfyNotifier(_HttpNotifier):
    def __init__(self, topic_url: str) -> None:
        self.topic_url = topic_url

    def send(self, title: str, body: str, priority: str = "normal") -> bool:
        req = urllib.request.Request(
            self.topic_url,
            data=body.encode("utf-8"),
            headers={"Title": title, "Priority": "3" if priority == "normal" else "4"},
            method="POST",
        )
        return self._send_with_retry(req)


def build_notifier(settings) -> Notifier:
    if settings.discord_webhook_url:
        return DiscordNotifier(settings.discord_webhook_url)
    if settings.ntfy_topic_url:
        return NtfyNotifier(settings.ntfy_topic_url)
    return NoopNotifier()
