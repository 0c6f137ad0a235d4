"""
Credential references.

Settings carry references such as "env:TWITTER_API_KEY" rather than raw
values; only the publish and feed layers ever see the resolved secret.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping, Protocol, Sequence

from ..config import Credentials
from ..errors import MissingCredentialsError

ENV_PREFIX = "env:"


class SecretsProvider(Protocol):
    def supports(self, ref: str) -> bool:
        ...

    def get(self, ref: str) -> str | None:
        """Resolved value, or None when unset or empty."""
        ...


class EnvSecretsProvider:
    """Reads "env:NAME" references from a mapping (the process environment by default)."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = environ

    def supports(self, ref: str) -> bool:
        return ref.startswith(ENV_PREFIX)

    def get(self, ref: str) -> str | None:
        if not self.supports(ref):
            return None
        source = os.environ if self._environ is None else self._environ
        return source.get(ref_label(ref)) or None


class CompositeSecretsProvider:
    """First provider that supports a reference and yields a value wins."""

    def __init__(self, providers: Sequence[SecretsProvider] | None = None):
        self.providers = list(providers) if providers else [EnvSecretsProvider()]

    def supports(self, ref: str) -> bool:
        return any(p.supports(ref) for p in self.providers)

    def get(self, ref: str) -> str | None:
        values = (p.get(ref) for p in self.providers if p.supports(ref))
        return next((v for v in values if v is not None), None)


def ref_label(ref: str) -> str:
    """The variable name of an env reference; other references unchanged."""
    return ref[len(ENV_PREFIX):] if ref.startswith(ENV_PREFIX) else ref


@dataclass(frozen=True)
class OAuthCredentials:
    """Resolved OAuth 1.0a user-context credentials. Never logged."""

    api_key: str
    api_secret: str
    access_token: str
    access_secret: str

    def __repr__(self) -> str:
        return "OAuthCredentials(<redacted>)"


def resolve_credentials(
    credentials: Credentials,
    provider: SecretsProvider | None = None,
) -> OAuthCredentials:
    """
    Resolve all four OAuth credentials.

    Raises:
        MissingCredentialsError: naming every reference that did not resolve
    """
    provider = provider or CompositeSecretsProvider()
    values: dict[str, str] = {}
    missing: list[str] = []
    for f in fields(Credentials):
        ref = getattr(credentials, f.name)
        value = provider.get(ref)
        if value is None:
            missing.append(ref_label(ref))
        else:
            values[f.name] = value
    if missing:
        raise MissingCredentialsError(missing)
    return OAuthCredentials(**values)
