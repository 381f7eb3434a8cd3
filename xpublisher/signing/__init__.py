"""OAuth 1.0a request signing shared by the publish and verify paths."""

from xpublisher.signing.encoding import percent_encode
from xpublisher.signing.header import (
    build_authorization_header,
    generate_nonce,
    generate_timestamp,
)
from xpublisher.signing.signature import (
    base_string_uri,
    hmac_sha1_signature,
    normalize_parameters,
    signature_base_string,
    signing_key,
)

__all__ = [
    "percent_encode",
    "build_authorization_header",
    "generate_nonce",
    "generate_timestamp",
    "base_string_uri",
    "hmac_sha1_signature",
    "normalize_parameters",
    "signature_base_string",
    "signing_key",
]
