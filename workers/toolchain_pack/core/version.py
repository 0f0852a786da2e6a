"""
Version resolver — decide which upstream LLVM release this run builds.

Resolution order: explicit override, then the profile's pinned release,
then the "latest release" endpoint.  The result is memoized on the
resolver object; every stage that needs the version receives the same
resolver and therefore observes the same value.
"""
import logging
import time
from typing import Callable, Optional

import httpx

from toolchain_pack.errors import ResolutionError

logger = logging.getLogger(__name__)

LATEST_RELEASE_URL = "https://api.github.com/repos/llvm/llvm-project/releases/latest"
# 4xx statuses worth retrying; every 5xx is retried
RETRYABLE_STATUSES = (408, 429)


class VersionResolver:
    """Memoized BuildVersion source for one pipeline run."""

    def __init__(
        self,
        override: Optional[str] = None,
        pinned: Optional[str] = None,
        url: str = LATEST_RELEASE_URL,
        retries: int = 3,
        retry_delay: float = 5.0,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.override = override or None
        self.pinned = pinned or None
        self.url = url
        self.retries = retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._client = client
        self._sleep = sleep
        self._version: Optional[str] = None

    @property
    def resolved(self) -> Optional[str]:
        """The cached version, or None if resolve() has not succeeded yet."""
        return self._version

    def resolve(self) -> str:
        if self._version is not None:
            return self._version

        if self.override:
            logger.info("Using override version: %s", self.override)
            self._version = self.override
        elif self.pinned:
            logger.info("Using pinned version: %s", self.pinned)
            self._version = self.pinned
        else:
            logger.info("Fetching latest LLVM release tag from %s", self.url)
            self._version = self._fetch_latest()

        logger.info("Resolved version: %s", self._version)
        return self._version

    # -----------------------------------------------------------------
    # Remote lookup
    # -----------------------------------------------------------------

    def _fetch_latest(self) -> str:
        if self._client is not None:
            return self._fetch_with(self._client)
        with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
            return self._fetch_with(client)

    def _fetch_with(self, client: httpx.Client) -> str:
        attempts = self.retries + 1
        last_error = ""
        for attempt in range(1, attempts + 1):
            try:
                resp = client.get(self.url, headers={"Accept": "application/vnd.github+json"})
                resp.raise_for_status()
            except httpx.HTTPError as e:
                status = _permanent_status(e)
                if status is not None:
                    raise ResolutionError(
                        f"Release lookup rejected with HTTP {status}.",
                        hint="Check RELEASES_URL, or set OVERRIDE_VERSION.",
                        context={"url": self.url, "status": str(status)},
                    ) from e
                last_error = str(e)
                logger.warning("Release lookup attempt %d/%d failed: %s", attempt, attempts, e)
                if attempt < attempts:
                    self._sleep(self.retry_delay)
                continue
            return _parse_tag(resp)

        raise ResolutionError(
            "Could not fetch latest LLVM version from GitHub Releases.",
            hint="Set OVERRIDE_VERSION to build a specific release.",
            context={"url": self.url, "attempts": str(attempts), "error": last_error},
        )


def _permanent_status(exc: httpx.HTTPError) -> Optional[int]:
    """The HTTP status if *exc* is a client error that retrying cannot fix."""
    if not isinstance(exc, httpx.HTTPStatusError):
        return None
    status = exc.response.status_code
    if status < 500 and status not in RETRYABLE_STATUSES:
        return status
    return None


def _parse_tag(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError as e:
        raise ResolutionError(
            "Release metadata is not valid JSON.",
            context={"url": str(resp.request.url), "error": str(e)},
        ) from e

    tag = payload.get("tag_name") if isinstance(payload, dict) else None
    if not isinstance(tag, str) or not tag.strip():
        raise ResolutionError(
            "Release metadata has no tag_name.",
            context={"url": str(resp.request.url)},
        )
    return tag.strip()
