"""
OAuth 1.0a request signing (HMAC-SHA1), user context.

Only the oauth_* parameters are signed: the tweets endpoint takes a JSON
body, which is not part of the signature base string.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
import time
from urllib.parse import quote

from .secrets import OAuthCredentials

SIGNATURE_METHOD = "HMAC-SHA1"
OAUTH_VERSION = "1.0"


def percent_encode(value: str) -> str:
    """RFC 3986 percent-encoding (unreserved: A-Z a-z 0-9 - . _ ~)."""
    return quote(value, safe="-._~")


def signature_base_string(method: str, url: str, params: dict[str, str]) -> str:
    parameter_string = "&".join(
        f"{percent_encode(k)}={percent_encode(params[k])}" for k in sorted(params)
    )
    return "&".join([method.upper(), percent_encode(url), percent_encode(parameter_string)])


def sign(base_string: str, consumer_secret: str, token_secret: str) -> str:
    signing_key = f"{percent_encode(consumer_secret)}&{percent_encode(token_secret)}"
    digest = hmac.new(signing_key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def build_oauth_header(
    method: str,
    url: str,
    credentials: OAuthCredentials,
    *,
    nonce: str | None = None,
    timestamp: int | None = None,
) -> str:
    """
    Build the Authorization header value for one request.

    `nonce` and `timestamp` default to 16 random bytes (hex) and the current
    unix time; tests pin them to get a deterministic signature.
    """
    params = {
        "oauth_consumer_key": credentials.api_key,
        "oauth_nonce": nonce if nonce is not None else os.urandom(16).hex(),
        "oauth_signature_method": SIGNATURE_METHOD,
        "oauth_timestamp": str(timestamp if timestamp is not None else int(time.time())),
        "oauth_token": credentials.access_token,
        "oauth_version": OAUTH_VERSION,
    }

    base_string = signature_base_string(method, url, params)
    params["oauth_signature"] = sign(base_string, credentials.api_secret, credentials.access_secret)

    header_params = ", ".join(f'{percent_encode(k)}="{percent_encode(params[k])}"' for k in sorted(params))
    return f"OAuth {header_params}"
