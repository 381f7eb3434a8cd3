"""
OAuth 1.0a HMAC-SHA1 signature engine.

Pure functions only: the same method, URL, parameters and secrets always
produce the same signature. Freshness comes from the ``oauth_nonce`` and
``oauth_timestamp`` parameters that the header builder puts into *params*.

Steps (RFC 5849 section 3.4):
    1. Percent-encode every parameter key and value.
    2. Sort by encoded key, ties broken by encoded value.
    3. Join ``key=value`` pairs with ``&`` (the parameter string).
    4. Base string: ``METHOD&enc(url)&enc(parameter string)``.
    5. Signing key: ``enc(consumer secret)&enc(token secret)``.
    6. Base64 of the HMAC-SHA1 digest of the base string.
"""

import base64
import hashlib
import hmac
from typing import Any, Mapping
from urllib.parse import urlsplit

from xpublisher.exceptions import SigningError
from xpublisher.signing.encoding import percent_encode


def _encode(value: Any, what: str) -> str:
    if value is None:
        raise SigningError(f"{what} cannot be None")
    if isinstance(value, bool):
        # lowercase, as sent on the wire
        value = "true" if value else "false"
    try:
        return percent_encode(str(value))
    except UnicodeEncodeError as exc:
        raise SigningError(f"{what} is not valid UTF-8 text: {exc}") from exc


def normalize_parameters(params: Mapping[str, Any]) -> str:
    """Build the normalized parameter string.

    Args:
        params: OAuth parameters merged with signed request parameters.

    Returns:
        ``k1=v1&k2=v2...`` with encoded, sorted pairs.

    Raises:
        SigningError: If a key or value is ``None`` or not encodable.
    """
    pairs = sorted(
        (_encode(key, "parameter name"), _encode(value, f"parameter {key!r}"))
        for key, value in params.items()
    )
    return "&".join(f"{key}={value}" for key, value in pairs)


_DEFAULT_PORTS = {"http": 80, "https": 443}


def base_string_uri(url: str) -> str:
    """Normalize *url* for the base string (RFC 5849 section 3.4.1.2).

    Scheme and host are lowercased, the scheme's default port is dropped,
    and an empty path becomes ``/``.  The path keeps its case.

    Raises:
        SigningError: On a relative URL or one carrying a query string
            or fragment.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        raise SigningError(f"URL must be absolute, got {url!r}")
    if parts.query or parts.fragment:
        raise SigningError(
            "URL must not carry a query string or fragment; "
            "pass query values as parameters instead"
        )

    scheme = parts.scheme.lower()
    try:
        port = parts.port
    except ValueError as exc:
        raise SigningError(f"URL has an invalid port: {url!r}") from exc

    authority = parts.hostname
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        authority = f"{authority}:{port}"
    return f"{scheme}://{authority}{parts.path or '/'}"


def signature_base_string(method: str, url: str, params: Mapping[str, Any]) -> str:
    """Build the canonical string that gets signed.

    Args:
        method: HTTP method, any case.
        url: Absolute URL without query string or fragment; normalized
            with :func:`base_string_uri`.
        params: Parameters participating in the signature.

    Raises:
        SigningError: On a blank method or a URL carrying a query string,
            fragment, or no scheme/host.
    """
    if not method or not method.strip():
        raise SigningError("HTTP method cannot be empty")

    return "&".join(
        [
            method.strip().upper(),
            percent_encode(base_string_uri(url)),
            percent_encode(normalize_parameters(params)),
        ]
    )


def signing_key(consumer_secret: str, token_secret: str = "") -> str:
    """Build the HMAC key. The ``&`` separator is present even without a token secret."""
    return f"{_encode(consumer_secret, 'consumer secret')}&{_encode(token_secret or '', 'token secret')}"


def hmac_sha1_signature(
    method: str,
    url: str,
    params: Mapping[str, Any],
    consumer_secret: str,
    token_secret: str = "",
) -> str:
    """Compute the ``oauth_signature`` value.

    Args:
        method: HTTP method.
        url: Base URL (no query string).
        params: OAuth parameters merged with signed request parameters.
        consumer_secret: API key secret.
        token_secret: Access token secret (may be empty).

    Returns:
        Standard base64 of the raw HMAC-SHA1 digest.

    Raises:
        SigningError: For malformed input.
    """
    base_string = signature_base_string(method, url, params)
    key = signing_key(consumer_secret, token_secret)
    digest = hmac.new(
        key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


__all__ = [
    "base_string_uri",
    "normalize_parameters",
    "signature_base_string",
    "signing_key",
    "hmac_sha1_signature",
]
