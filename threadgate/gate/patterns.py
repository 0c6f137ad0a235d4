"""
Pattern catalog for text leak and label corruption detection.

The patterns are data, not code: the gate iterates whatever catalog it is
given, and a catalog can be loaded from TOML:

    [[suspicious]]
    name = "nan"
    pattern = "NaN"

    [[garbled]]
    name = "post-t-t"
    pattern = "PostT[a-z]+T[a-z]+"
    flags = ["IGNORECASE"]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore


@dataclass(frozen=True)
class NamedPattern:
    name: str
    regex: re.Pattern[str]

    @property
    def source(self) -> str:
        return self.regex.pattern

    def search(self, text: str) -> re.Match[str] | None:
        return self.regex.search(text)


@dataclass(frozen=True)
class PatternCatalog:
    suspicious: tuple[NamedPattern, ...] = field(default_factory=tuple)
    garbled: tuple[NamedPattern, ...] = field(default_factory=tuple)


def _np(name: str, pattern: str, flags: int = 0) -> NamedPattern:
    return NamedPattern(name=name, regex=re.compile(pattern, flags))


# Literal leakage tokens, garbled text, and unfilled template placeholders.
SUSPICIOUS_PATTERNS: tuple[NamedPattern, ...] = (
    _np("nan", r"NaN"),
    _np("undefined", r"undefined"),
    _np("null", r"\bnull\b"),
    _np("infinity", r"Infinity"),
    _np("object-object", r"\[object Object\]"),
    _np("repeated-chars", r"(.)\1{5,}"),
    _np("placeholder-unusual", r"\bUNUSUAL\b"),
    _np("placeholder-uw", r"\bUW\b"),
    _np("placeholder-sweep", r"\bSWEEP\b"),
    _np("placeholder-na", r"\bN/A\b(?!\s*</text>)"),
)

# Known corruption shape ("PostTgraedneeTraapteedTimeline"). A generic
# CamelCase pattern would hit valid SVG attributes such as userSpaceOnUse.
GARBLED_LABEL_PATTERNS: tuple[NamedPattern, ...] = (
    _np("post-t-t", r"PostT[a-z]+T[a-z]+", re.IGNORECASE),
)

DEFAULT_CATALOG = PatternCatalog(suspicious=SUSPICIOUS_PATTERNS, garbled=GARBLED_LABEL_PATTERNS)


def _flags(raw: Any) -> int:
    value = 0
    if isinstance(raw, list):
        for name in raw:
            flag = getattr(re, str(name).strip().upper(), None)
            if not isinstance(flag, re.RegexFlag):
                raise ValueError(f"Unknown regex flag: {name}")
            value |= flag
    return value


def _load_section(data: dict[str, Any], key: str) -> tuple[NamedPattern, ...]:
    patterns: list[NamedPattern] = []
    for raw in data.get(key, []):
        if not isinstance(raw, dict):
            continue
        pattern = raw.get("pattern")
        if not isinstance(pattern, str) or not pattern:
            continue
        name = str(raw.get("name") or pattern)
        patterns.append(_np(name, pattern, _flags(raw.get("flags"))))
    return tuple(patterns)


def load_catalog(path: Path, *, extend_defaults: bool = False) -> PatternCatalog:
    """
    Load a pattern catalog from TOML.

    Args:
        path: TOML file with [[suspicious]] and [[garbled]] tables
        extend_defaults: Append to the built-in patterns instead of replacing them

    Returns:
        PatternCatalog
    """
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    suspicious = _load_section(data, "suspicious")
    garbled = _load_section(data, "garbled")

    if extend_defaults or data.get("extend_defaults") is True:
        suspicious = DEFAULT_CATALOG.suspicious + suspicious
        garbled = DEFAULT_CATALOG.garbled + garbled

    return PatternCatalog(suspicious=suspicious, garbled=garbled)
