"""
OAuth 1.0a ``Authorization`` header builder.

Every call draws a fresh nonce and timestamp; there is no shared counter or
cache, so concurrent signings never collide. Secrets only ever flow into
:func:`~xpublisher.signing.signature.hmac_sha1_signature` and are never
logged.

Usage::

    header = build_authorization_header("POST", TWEETS_URL, credentials)
    await client.post(TWEETS_URL, headers={"Authorization": header}, json=body)
"""

import secrets
import time
from typing import Any, Dict, Mapping, Optional

from xpublisher.models import XCredentials
from xpublisher.signing.encoding import percent_encode
from xpublisher.signing.signature import hmac_sha1_signature

SIGNATURE_METHOD: str = "HMAC-SHA1"
OAUTH_VERSION: str = "1.0"
NONCE_BYTES: int = 16


def generate_nonce() -> str:
    """Return 16 cryptographically random bytes as 32 hex characters."""
    return secrets.token_hex(NONCE_BYTES)


def generate_timestamp() -> str:
    """Return the current Unix time in whole seconds."""
    return str(int(time.time()))


def build_oauth_parameters(
    credentials: XCredentials,
    nonce: str,
    timestamp: str,
) -> Dict[str, str]:
    """Assemble the unsigned ``oauth_*`` parameters for one request."""
    return {
        "oauth_consumer_key": credentials.api_key,
        "oauth_nonce": nonce,
        "oauth_signature_method": SIGNATURE_METHOD,
        "oauth_timestamp": timestamp,
        "oauth_token": credentials.access_token,
        "oauth_version": OAUTH_VERSION,
    }


def serialize_header(oauth_params: Mapping[str, str]) -> str:
    """Render ``OAuth k1="v1", k2="v2"`` with keys in lexicographic order."""
    return "OAuth " + ", ".join(
        f'{percent_encode(key)}="{percent_encode(oauth_params[key])}"'
        for key in sorted(oauth_params)
    )


def build_authorization_header(
    method: str,
    url: str,
    credentials: XCredentials,
    params: Optional[Mapping[str, Any]] = None,
    *,
    nonce: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> str:
    """Build a signed ``Authorization`` header value.

    Args:
        method: HTTP method.
        url: Request URL without query string.
        credentials: The user's X API credentials.
        params: Query or form parameters that take part in the signature.
            Empty for raw JSON bodies, which are never signed.
        nonce: Override for deterministic tests. Fresh when ``None``.
        timestamp: Override for deterministic tests. Current time when ``None``.

    Returns:
        The header value, e.g. ``OAuth oauth_consumer_key="...", ...``.

    Raises:
        SigningError: For malformed input.
    """
    oauth_params = build_oauth_parameters(
        credentials,
        nonce=nonce if nonce is not None else generate_nonce(),
        timestamp=timestamp if timestamp is not None else generate_timestamp(),
    )

    signed_params: Dict[str, Any] = dict(params or {})
    signed_params.update(oauth_params)

    oauth_params["oauth_signature"] = hmac_sha1_signature(
        method,
        url,
        signed_params,
        credentials.api_key_secret,
        credentials.access_token_secret,
    )
    return serialize_header(oauth_params)


__all__ = [
    "SIGNATURE_METHOD",
    "OAUTH_VERSION",
    "generate_nonce",
    "generate_timestamp",
    "build_oauth_parameters",
    "serialize_header",
    "build_authorization_header",
]
