"""Tests for OAuth 1.0a percent-encoding, signatures and headers.

Validates:
- RFC 3986 encoding, including the five characters generic encoders keep
- Parameter normalization and the signature base string
- The HMAC-SHA1 signature against X's documented example request
- Authorization header layout, nonce freshness and secret handling
"""

import re

import pytest

from xpublisher.exceptions import SigningError
from xpublisher.models import XCredentials
from xpublisher.signing import (
    base_string_uri,
    build_authorization_header,
    generate_nonce,
    generate_timestamp,
    hmac_sha1_signature,
    normalize_parameters,
    percent_encode,
    signature_base_string,
    signing_key,
)
from xpublisher.signing.header import serialize_header


# X developer documentation example ("Creating a signature").
DOC_URL = "https://api.twitter.com/1.1/statuses/update.json"
DOC_CONSUMER_SECRET = "kAcSOqF21Fu85e7zjz7ZN2U4ZRhfV3WpwPAoE3Z7kBw"
DOC_TOKEN_SECRET = "LswwdoUaIvS8ltyTt5jkRh4J50vUPVVHtR2YPi5kE"
DOC_NONCE = "kYjzVBB8Y0ZFabxSWbWovY3uYSQ2pTgmZeNu2VS4cg"
DOC_TIMESTAMP = "1318622958"
DOC_PARAMS = {
    "status": "Hello Ladies + Gentlemen, a signed OAuth request!",
    "include_entities": "true",
    "oauth_consumer_key": "xvz1evFS4wEEPTGEFPHBog",
    "oauth_nonce": DOC_NONCE,
    "oauth_signature_method": "HMAC-SHA1",
    "oauth_timestamp": DOC_TIMESTAMP,
    "oauth_token": "370773112-GmHxMAgYyLbNEtIKZeRNFsMKPR9EyMZeS9weJAEb",
    "oauth_version": "1.0",
}
DOC_SIGNATURE = "hCtSmYh+iHYCEqBWrE7C7hYmtUk="


@pytest.fixture
def doc_credentials():
    return XCredentials(
        user_id="user-1",
        api_key="xvz1evFS4wEEPTGEFPHBog",
        api_key_secret=DOC_CONSUMER_SECRET,
        access_token="370773112-GmHxMAgYyLbNEtIKZeRNFsMKPR9EyMZeS9weJAEb",
        access_token_secret=DOC_TOKEN_SECRET,
        is_connected=True,
    )


def _header_params(header: str) -> dict:
    assert header.startswith("OAuth ")
    return dict(re.findall(r'([^=, ]+)="([^"]*)"', header[len("OAuth "):]))


# =============================================================================
# Percent-encoding
# =============================================================================


class TestPercentEncode:
    """Tests for RFC 3986 percent-encoding."""

    def test_unreserved_characters_pass_through(self):
        value = "AZaz09-_.~"
        assert percent_encode(value) == value

    @pytest.mark.parametrize(
        "char, expected",
        [("!", "%21"), ("'", "%27"), ("(", "%28"), (")", "%29"), ("*", "%2A")],
    )
    def test_sub_delims_are_encoded(self, char, expected):
        """The five characters generic URI encoders leave alone are escaped."""
        assert percent_encode(char) == expected

    def test_space_plus_and_slash(self):
        assert percent_encode("a b+c/d") == "a%20b%2Bc%2Fd"

    def test_utf8_multibyte_uses_uppercase_hex(self):
        assert percent_encode("é") == "%C3%A9"
        assert percent_encode("日本") == "%E6%97%A5%E6%9C%AC"

    def test_emoji_encodes_all_four_bytes(self):
        assert percent_encode("😀") == "%F0%9F%98%80"

    def test_empty_string(self):
        assert percent_encode("") == ""


# =============================================================================
# Signature engine
# =============================================================================


class TestSignature:
    """Tests for normalization, base string, key and HMAC."""

    def test_normalize_sorts_by_encoded_key(self):
        result = normalize_parameters({"b": "2", "a": "1", "c": "x y"})
        assert result == "a=1&b=2&c=x%20y"

    def test_normalize_renders_booleans_lowercase(self):
        assert normalize_parameters({"flag": True}) == "flag=true"

    def test_normalize_rejects_none_values(self):
        with pytest.raises(SigningError):
            normalize_parameters({"a": None})

    def test_normalize_rejects_lone_surrogates(self):
        with pytest.raises(SigningError):
            normalize_parameters({"a": "\ud800"})

    def test_base_string_matches_documented_example(self):
        base = signature_base_string("post", DOC_URL, DOC_PARAMS)
        assert base.startswith(
            "POST&https%3A%2F%2Fapi.twitter.com%2F1.1%2Fstatuses%2Fupdate.json&"
        )
        assert "include_entities%3Dtrue%26oauth_consumer_key" in base
        assert "status%3DHello%2520Ladies%2520%252B%2520Gentlemen" in base

    def test_base_string_rejects_query_string(self):
        with pytest.raises(SigningError):
            signature_base_string("GET", "https://api.twitter.com/2/users/me?x=1", {})

    def test_base_string_rejects_relative_url(self):
        with pytest.raises(SigningError):
            signature_base_string("GET", "/2/users/me", {})

    def test_base_string_rejects_blank_method(self):
        with pytest.raises(SigningError):
            signature_base_string("  ", DOC_URL, {})

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("HTTPS://API.X.com/2/tweets", "https://api.x.com/2/tweets"),
            ("https://api.x.com:443/2/tweets", "https://api.x.com/2/tweets"),
            ("http://example.com:80/r/v2", "http://example.com/r/v2"),
            ("https://example.com:8443/r", "https://example.com:8443/r"),
            ("https://example.com", "https://example.com/"),
            ("https://example.com/Path/Case", "https://example.com/Path/Case"),
        ],
    )
    def test_base_string_uri_normalization(self, url, expected):
        assert base_string_uri(url) == expected

    def test_equivalent_urls_sign_identically(self):
        args = (DOC_PARAMS, DOC_CONSUMER_SECRET, DOC_TOKEN_SECRET)
        assert (
            hmac_sha1_signature("POST", "HTTPS://API.Twitter.com:443/1.1/statuses/update.json", *args)
            == DOC_SIGNATURE
        )

    def test_signing_key_keeps_ampersand_without_token_secret(self):
        assert signing_key("secret") == "secret&"
        assert signing_key("a b", "c+d") == "a%20b&c%2Bd"

    def test_signature_matches_documented_example(self):
        signature = hmac_sha1_signature(
            "POST", DOC_URL, DOC_PARAMS, DOC_CONSUMER_SECRET, DOC_TOKEN_SECRET
        )
        assert signature == DOC_SIGNATURE

    def test_signature_is_deterministic(self):
        args = ("POST", DOC_URL, DOC_PARAMS, DOC_CONSUMER_SECRET, DOC_TOKEN_SECRET)
        assert hmac_sha1_signature(*args) == hmac_sha1_signature(*args)

    def test_signature_changes_with_token_secret(self):
        first = hmac_sha1_signature("POST", DOC_URL, DOC_PARAMS, DOC_CONSUMER_SECRET, "a")
        second = hmac_sha1_signature("POST", DOC_URL, DOC_PARAMS, DOC_CONSUMER_SECRET, "b")
        assert first != second


# =============================================================================
# Authorization header
# =============================================================================


class TestAuthorizationHeader:
    """Tests for the OAuth header builder."""

    def test_documented_example_header(self, doc_credentials):
        header = build_authorization_header(
            "POST",
            DOC_URL,
            doc_credentials,
            params={
                "status": "Hello Ladies + Gentlemen, a signed OAuth request!",
                "include_entities": True,
            },
            nonce=DOC_NONCE,
            timestamp=DOC_TIMESTAMP,
        )
        params = _header_params(header)
        assert params["oauth_signature"] == "hCtSmYh%2BiHYCEqBWrE7C7hYmtUk%3D"

    def test_header_has_seven_oauth_params_in_sorted_order(self, doc_credentials):
        header = build_authorization_header("GET", "https://api.twitter.com/2/users/me", doc_credentials)
        keys = re.findall(r'([a-z_]+)="', header)
        assert keys == sorted(keys)
        assert set(keys) == {
            "oauth_consumer_key",
            "oauth_nonce",
            "oauth_signature",
            "oauth_signature_method",
            "oauth_timestamp",
            "oauth_token",
            "oauth_version",
        }

    def test_request_params_are_signed_but_not_in_header(self, doc_credentials):
        header = build_authorization_header(
            "POST", DOC_URL, doc_credentials, params={"status": "hi"}
        )
        assert "status" not in _header_params(header)

    def test_header_values_are_percent_encoded(self):
        header = serialize_header({"oauth_token": "a+b", "oauth_nonce": "x/y"})
        assert header == 'OAuth oauth_nonce="x%2Fy", oauth_token="a%2Bb"'

    def test_header_never_contains_secrets(self, doc_credentials):
        header = build_authorization_header("POST", DOC_URL, doc_credentials)
        assert DOC_CONSUMER_SECRET not in header
        assert DOC_TOKEN_SECRET not in header

    def test_successive_headers_differ(self, doc_credentials):
        first = build_authorization_header("POST", DOC_URL, doc_credentials)
        second = build_authorization_header("POST", DOC_URL, doc_credentials)
        assert _header_params(first)["oauth_nonce"] != _header_params(second)["oauth_nonce"]
        assert first != second

    def test_nonce_is_32_hex_characters(self):
        nonce = generate_nonce()
        assert re.fullmatch(r"[0-9a-f]{32}", nonce)

    def test_nonces_are_unique(self):
        assert len({generate_nonce() for _ in range(200)}) == 200

    def test_timestamp_is_whole_seconds(self):
        assert generate_timestamp().isdigit()
