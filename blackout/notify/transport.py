"""Outbound message transports: Telegram Bot API and a logging dry-run stand-in."""

import logging
import os
from typing import Protocol

import httpx

from blackout.config.schema import TelegramConfig
from blackout.errors import DeliveryFailed

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_CHARS = 4096
TELEGRAM_MAX_CAPTION_CHARS = 1024


class Transport(Protocol):
    def send_text(self, destination: int, message: str) -> None: ...

    def send_image(self, destination: int, image: bytes, caption: str = "") -> None: ...


class LogTransport:
    """Logs outgoing messages instead of sending them."""

    def send_text(self, destination: int, message: str) -> None:
        logger.info("DRY-RUN: message to %s: %s", destination, message.replace("\n", " "))

    def send_image(self, destination: int, image: bytes, caption: str = "") -> None:
        logger.info(
            "DRY-RUN: image (%d bytes) to %s: %s", len(image), destination, caption
        )


class TelegramTransport:
    """Thin wrapper around the Telegram Bot API sendMessage/sendPhoto methods."""

    def __init__(
        self,
        bot_token: str | None = None,
        api_base_url: str = TELEGRAM_API_BASE,
        timeout: float = 30.0,
    ):
        self.bot_token = bot_token or os.environ.get("BOT_TOKEN", "")
        if not self.bot_token:
            raise DeliveryFailed("BOT_TOKEN not set")
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout

    def _url(self, method: str) -> str:
        return f"{self.api_base_url}/bot{self.bot_token}/{method}"

    def _call(self, method: str, **kwargs) -> dict:
        try:
            resp = httpx.post(self._url(method), timeout=self.timeout, **kwargs)
        except httpx.RequestError as e:
            logger.error("Telegram %s request failed: %s", method, e)
            raise DeliveryFailed(f"Request failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400 or not body.get("ok", False):
            description = body.get("description", resp.text)
            logger.error("Telegram %s returned %d: %s", method, resp.status_code, description)
            raise DeliveryFailed(f"HTTP {resp.status_code}: {description}", resp.status_code)
        return body

    def send_text(self, destination: int, message: str) -> None:
        self._call(
            "sendMessage",
            json={"chat_id": destination, "text": message[:TELEGRAM_MAX_MESSAGE_CHARS]},
        )

    def send_image(self, destination: int, image: bytes, caption: str = "") -> None:
        self._call(
            "sendPhoto",
            data={"chat_id": str(destination), "caption": caption[:TELEGRAM_MAX_CAPTION_CHARS]},
            files={"photo": ("schedule.png", image, "image/png")},
        )


def build_transport(config: TelegramConfig) -> Transport:
    """Telegram when enabled, otherwise the logging dry-run transport."""
    if not config.enabled:
        return LogTransport()
    return TelegramTransport(
        bot_token=config.bot_token,
        api_base_url=config.api_base_url,
        timeout=config.timeout_seconds,
    )
