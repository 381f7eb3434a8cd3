"""
Async X/Twitter API v2 client for publishing and connection tests.

Uses ``httpx`` to call the X API v2 endpoints with per-user OAuth 1.0a
(user context) signatures.  Every request is signed on its own with a
fresh nonce and timestamp.

No automatic retries: a retried ``POST /tweets`` can publish twice, so
retry policy belongs to the caller.  Timeouts and connection failures are
raised as :class:`~xpublisher.exceptions.TransportError`; non-2xx answers
as :class:`~xpublisher.exceptions.RemoteRejected` with the platform's
status and error body untouched.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from xpublisher.exceptions import RemoteRejected, TransportError
from xpublisher.models import PublishedTweet, XCredentials
from xpublisher.signing import build_authorization_header

logger = logging.getLogger(__name__)


class XClient:
    """Async X API v2 client for one-shot, user-signed calls.

    Args:
        base_url: API root, defaults to :attr:`BASE_URL`.
        timeout: Request timeout in seconds, bounding every call.
        http_client: Optional shared ``httpx.AsyncClient``.  When ``None``
            a short-lived client is opened per call.

    Usage::

        client = XClient()
        tweet = await client.publish("Hello world", credentials)
        profile = await client.verify(credentials)
    """

    BASE_URL: str = "https://api.twitter.com/2"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def tweets_url(self) -> str:
        return f"{self.base_url}/tweets"

    @property
    def me_url(self) -> str:
        return f"{self.base_url}/users/me"

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(self, text: str, credentials: XCredentials) -> PublishedTweet:
        """Create a tweet.

        The JSON body is not part of the signature; only OAuth parameters
        are signed.

        Args:
            text: Tweet text.
            credentials: Complete credentials of the posting user.

        Returns:
            The accepted tweet with its ``remote_id``.

        Raises:
            RemoteRejected: On non-2xx, or a 2xx without ``data.id``.
            TransportError: On timeout or connection failure.
        """
        status, data = await self._request(
            "POST", self.tweets_url, credentials, json_body={"text": text}
        )
        tweet = data.get("data") if isinstance(data, dict) else None
        remote_id = tweet.get("id") if isinstance(tweet, dict) else None
        if not remote_id:
            # 2xx without an id cannot prove publication
            raise RemoteRejected(status, data)

        logger.info(
            "[X_CLIENT] Tweet created: remote_id=%s, text_len=%d",
            remote_id,
            len(text),
        )
        return PublishedTweet(remote_id=str(remote_id), data=tweet)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    async def verify(self, credentials: XCredentials) -> Dict[str, Any]:
        """Probe ``GET /users/me`` to confirm the credentials work.

        Returns:
            The authenticated user's profile (``data`` object).

        Raises:
            RemoteRejected: On non-2xx (401 for bad signatures or keys).
            TransportError: On timeout or connection failure.
        """
        _, data = await self._request("GET", self.me_url, credentials)
        profile = data.get("data", {}) if isinstance(data, dict) else {}
        logger.info(
            "[X_CLIENT] Connection verified for @%s",
            profile.get("username", "?"),
        )
        return profile

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        credentials: XCredentials,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any]:
        """Sign and send one request.

        Returns:
            The HTTP status and the decoded body of a 2xx response.
        """
        headers = {
            "Authorization": build_authorization_header(method, url, credentials),
        }
        if json_body is not None:
            headers["Content-Type"] = "application/json"

        operation = "publish" if method == "POST" else "verify"
        try:
            if self._http_client is not None:
                response = await self._http_client.request(
                    method, url, headers=headers, json=json_body, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, headers=headers, json=json_body
                    )
        except httpx.TransportError as exc:
            # TimeoutException is a TransportError subclass.
            logger.warning(
                "[X_CLIENT] %s %s transport failure: %s (retriable)",
                method,
                url,
                type(exc).__name__,
            )
            raise TransportError(operation, exc) from exc

        payload = self._decode(response)
        if not response.is_success:
            logger.error(
                "[X_CLIENT] %s %s -> HTTP %d: %s",
                method,
                url,
                response.status_code,
                payload,
            )
            raise RemoteRejected(response.status_code, payload)

        logger.debug("[X_CLIENT] %s %s -> HTTP %d", method, url, response.status_code)
        return response.status_code, payload

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        """Decode a JSON body; non-JSON bodies become ``{"detail": text}``."""
        try:
            return response.json()
        except ValueError:
            return {"detail": response.text}


__all__ = ["XClient"]
