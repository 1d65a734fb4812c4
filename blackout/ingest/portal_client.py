"""Regional power portal client: anti-bot session acquisition and schedule lookups."""

import logging
import random
import re
import time
from dataclasses import dataclass

import httpx

from blackout.config.defaults import DEFAULT_USER_AGENTS
from blackout.errors import TokenNotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)

PORTAL_BASE_URL = "https://kiroe.com.ua"
BLACKOUT_PAGE_PATH = "/electricity-blackout"
LOOKUP_PATH = "/electricity-blackout/websearch/v3/{resolved_id}"
TOKEN_PATTERN = re.compile(r'token: "(.+?)"')
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


@dataclass(frozen=True)
class Session:
    token: str
    cookies: tuple[str, ...]

    def cookie_header(self) -> str:
        """Cookie header value: the name=value part of every Set-Cookie, joined."""
        return "; ".join(c.split(";")[0].strip() for c in self.cookies if c.strip())


class PortalClient:
    def __init__(
        self,
        base_url: str = PORTAL_BASE_URL,
        user_agents: list[str] | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_agents = user_agents or list(DEFAULT_USER_AGENTS)
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    def _user_agent(self) -> str:
        return random.choice(self.user_agents)

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying transport errors and 429/5xx with exponential backoff."""
        for attempt in range(self.max_retries + 1):
            try:
                resp = httpx.request(method, url, timeout=self.timeout, **kwargs)
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    delay = self.retry_base_delay * (2**attempt)
                    logger.warning(
                        "Portal request error, retrying in %.1fs: %s", delay, e
                    )
                    time.sleep(delay)
                    continue
                raise UpstreamUnavailable(f"{method} {url} failed: {e}") from e

            if resp.status_code in RETRYABLE_STATUSES and attempt < self.max_retries:
                delay = self.retry_base_delay * (2**attempt)
                logger.warning(
                    "Portal %s returned %d, retrying in %.1fs (attempt %d/%d)",
                    url, resp.status_code, delay, attempt + 1, self.max_retries,
                )
                time.sleep(delay)
                continue
            if resp.status_code >= 400:
                raise UpstreamUnavailable(
                    f"{method} {url} returned HTTP {resp.status_code}", resp.status_code
                )
            return resp

        raise UpstreamUnavailable(f"{method} {url} exhausted retries")

    def acquire_session(self) -> Session:
        """Fetch the blackout page and extract the anti-bot token and cookies.

        Raises UpstreamUnavailable if the page cannot be fetched and
        TokenNotFound if the token is not embedded in it.
        """
        url = f"{self.base_url}{BLACKOUT_PAGE_PATH}"
        resp = self._request("GET", url, headers={"User-Agent": self._user_agent()})
        cookies = tuple(resp.headers.get_list("set-cookie"))

        match = TOKEN_PATTERN.search(resp.text)
        if match is None:
            logger.error("Token not found on %s (status %d)", url, resp.status_code)
            raise TokenNotFound(f"Token pattern not found on {url}")

        logger.info("Acquired portal session with %d cookies", len(cookies))
        return Session(token=match.group(1), cookies=cookies)

    def lookup(self, resolved_id: int, session: Session) -> dict | None:
        """Query the schedule for one opaque ID.

        Returns the first data row, or None when the portal answers with no
        usable row (unknown ID, expired session, or a non-JSON interstitial).
        """
        url = f"{self.base_url}{LOOKUP_PATH.format(resolved_id=resolved_id)}"
        headers = {
            "User-Agent": self._user_agent(),
            "Cookie": session.cookie_header(),
        }
        resp = self._request(
            "POST", url, headers=headers, data={"token": session.token, "ajax": "1"}
        )
        logger.debug("Lookup for ID %d returned %d", resolved_id, resp.status_code)

        try:
            payload = resp.json()
        except ValueError:
            logger.warning("Lookup for ID %d returned a non-JSON body", resolved_id)
            return None

        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            return None
        return rows[0]
