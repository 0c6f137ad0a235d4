"""OAuth 1.0a signing and credential reference resolution."""

from __future__ import annotations

import pytest

from threadgate.config import Credentials
from threadgate.errors import MissingCredentialsError
from threadgate.publish.oauth import build_oauth_header, percent_encode, sign, signature_base_string
from threadgate.publish.secrets import (
    CompositeSecretsProvider,
    EnvSecretsProvider,
    OAuthCredentials,
    resolve_credentials,
)

# Worked example from the platform's request-signing documentation.
EXAMPLE_URL = "https://api.twitter.com/1.1/statuses/update.json"
EXAMPLE_PARAMS = {
    "status": "Hello Ladies + Gentlemen, a signed OAuth request!",
    "include_entities": "true",
    "oauth_consumer_key": "xvz1evFS4wEEPTGEFPHBog",
    "oauth_nonce": "kYjzVBB8Y0ZFabxSWbWovY3uYSQ2pTgmZeNu2VS4cg",
    "oauth_signature_method": "HMAC-SHA1",
    "oauth_timestamp": "1318622958",
    "oauth_token": "370773112-GmHxMAgYyLbNEtIKZeRNFsMKPR9EyMZeS9weJAEb",
    "oauth_version": "1.0",
}
EXAMPLE_BASE = (
    "POST&https%3A%2F%2Fapi.twitter.com%2F1.1%2Fstatuses%2Fupdate.json&include_entities%3Dtrue"
    "%26oauth_consumer_key%3Dxvz1evFS4wEEPTGEFPHBog"
    "%26oauth_nonce%3DkYjzVBB8Y0ZFabxSWbWovY3uYSQ2pTgmZeNu2VS4cg"
    "%26oauth_signature_method%3DHMAC-SHA1%26oauth_timestamp%3D1318622958"
    "%26oauth_token%3D370773112-GmHxMAgYyLbNEtIKZeRNFsMKPR9EyMZeS9weJAEb%26oauth_version%3D1.0"
    "%26status%3DHello%2520Ladies%2520%252B%2520Gentlemen%252C%2520a%2520signed%2520OAuth%2520request%2521"
)


@pytest.mark.parametrize(
    ("raw", "encoded"),
    [
        ("Ladies + Gentlemen", "Ladies%20%2B%20Gentlemen"),
        ("An encoded string!", "An%20encoded%20string%21"),
        ("Dogs, Cats & Mice", "Dogs%2C%20Cats%20%26%20Mice"),
        ("a-b.c_d~e", "a-b.c_d~e"),
        ("☃", "%E2%98%83"),
    ],
)
def test_percent_encode(raw: str, encoded: str) -> None:
    assert percent_encode(raw) == encoded


def test_signature_base_string_matches_documented_example() -> None:
    assert signature_base_string("post", EXAMPLE_URL, EXAMPLE_PARAMS) == EXAMPLE_BASE


def test_sign_matches_documented_example() -> None:
    signature = sign(
        EXAMPLE_BASE,
        "kAcSOqF21Fu85e7zjz7ZN2U4ZRhfV3WpwPAoE3Z7kBw",
        "LswwdoUaIvS8ltyTt5jkRh4J50vUPVVHtR2YPi5kE",
    )
    assert signature == "hCtSmYh+iHYCEqBWrE7C7hYmtUk="


def test_header_is_deterministic_with_pinned_nonce() -> None:
    creds = OAuthCredentials("ck", "cs", "at", "as")

    first = build_oauth_header("POST", "https://api.twitter.com/2/tweets", creds, nonce="abc", timestamp=1700000000)
    second = build_oauth_header("POST", "https://api.twitter.com/2/tweets", creds, nonce="abc", timestamp=1700000000)

    assert first == second
    assert first.startswith('OAuth oauth_consumer_key="ck", oauth_nonce="abc", ')
    assert 'oauth_timestamp="1700000000"' in first
    assert 'oauth_token="at"' in first
    assert "oauth_signature=" in first


def test_header_nonce_varies_by_default() -> None:
    creds = OAuthCredentials("ck", "cs", "at", "as")

    assert build_oauth_header("POST", "https://x", creds) != build_oauth_header("POST", "https://x", creds)


def test_credentials_never_repr_values() -> None:
    assert "s3cret" not in repr(OAuthCredentials("ck", "s3cret", "at", "as"))


def test_resolve_credentials_from_env_refs() -> None:
    env = {
        "TWITTER_API_KEY": "k",
        "TWITTER_API_SECRET": "s",
        "TWITTER_ACCESS_TOKEN": "t",
        "TWITTER_ACCESS_SECRET": "x",
    }

    creds = resolve_credentials(Credentials(), EnvSecretsProvider(env))

    assert creds == OAuthCredentials("k", "s", "t", "x")


def test_missing_credentials_are_all_named() -> None:
    with pytest.raises(MissingCredentialsError) as exc:
        resolve_credentials(Credentials(), EnvSecretsProvider({"TWITTER_API_KEY": "k", "TWITTER_API_SECRET": ""}))

    assert exc.value.missing == ["TWITTER_API_SECRET", "TWITTER_ACCESS_TOKEN", "TWITTER_ACCESS_SECRET"]


def test_composite_provider_falls_through() -> None:
    provider = CompositeSecretsProvider([EnvSecretsProvider({}), EnvSecretsProvider({"A": "1"})])

    assert provider.get("env:A") == "1"
    assert provider.get("vault:A") is None
    assert not provider.supports("vault:A")
