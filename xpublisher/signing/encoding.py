"""RFC 3986 percent-encoding used for every OAuth 1.0a value.

Only the unreserved characters ``A-Z a-z 0-9 - _ . ~`` pass through.
Everything else, including ``! ' ( ) *`` which generic URI encoders keep,
is UTF-8 encoded and written as ``%XX`` with uppercase hex digits. X
rejects signatures built with any other encoding of those five characters.
"""

from urllib.parse import quote

UNRESERVED_CHARACTERS: str = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)


def percent_encode(value: str) -> str:
    """Percent-encode *value* per RFC 3986 section 2.1.

    Args:
        value: Any text.

    Returns:
        The encoded string.

    Example::

        >>> percent_encode("A B!")
        'A%20B%21'
    """
    # safe="" escapes "/" as well
    return quote(value, safe="", encoding="utf-8", errors="strict")


__all__ = ["UNRESERVED_CHARACTERS", "percent_encode"]
