"""
Persisted run records.

`RunArtifacts` is the interchange format between generation, the publish
gate and the publisher. `to_dict()` / `from_dict()` use the on-disk camelCase
field names and round-trip exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class SnapshotInfo:
    """Fingerprint of one persisted JSON payload (sha256 over the bytes on disk)."""

    path: str
    sha256: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "sha256": self.sha256}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotInfo:
        return cls(path=str(data["path"]), sha256=str(data["sha256"]))


@dataclass
class ProvenanceEntry:
    """Links a derived fact (a chart, the thread) back to raw payloads."""

    source: str
    payload_path: str | None = None
    payload_hash: str | None = None
    derived_from: list[str] | None = None
    notes: str | None = None

    @classmethod
    def from_snapshot(cls, source: str, info: SnapshotInfo | None, notes: str | None = None) -> ProvenanceEntry:
        if info is None:
            return cls(source=source, notes=notes)
        return cls(source=source, payload_path=info.path, payload_hash=info.sha256, notes=notes)

    @property
    def has_payload(self) -> bool:
        return bool(self.payload_path and self.payload_hash)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"source": self.source}
        if self.payload_path is not None:
            result["payloadPath"] = self.payload_path
        if self.payload_hash is not None:
            result["payloadHash"] = self.payload_hash
        if self.derived_from is not None:
            result["derivedFrom"] = list(self.derived_from)
        if self.notes is not None:
            result["notes"] = self.notes
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProvenanceEntry:
        derived = data.get("derivedFrom")
        return cls(
            source=str(data.get("source", "")),
            payload_path=data.get("payloadPath"),
            payload_hash=data.get("payloadHash"),
            derived_from=list(derived) if derived is not None else None,
            notes=data.get("notes"),
        )


@dataclass
class ValidationSummary:
    """The gate verdict as stored with a run (codes and messages only)."""

    is_publishable: bool
    errors: list[dict[str, str]] = field(default_factory=list)
    warnings: list[dict[str, str]] = field(default_factory=list)
    summary: str | None = None

    @classmethod
    def from_gate(cls, gate: Any) -> ValidationSummary:
        return cls(
            is_publishable=gate.is_publishable,
            errors=[{"code": e.code, "message": e.message} for e in gate.errors],
            warnings=[{"code": w.code, "message": w.message} for w in gate.warnings],
            summary=gate.summary,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "isPublishable": self.is_publishable,
            "errors": [dict(e) for e in self.errors],
            "warnings": [dict(w) for w in self.warnings],
        }
        if self.summary is not None:
            result["summary"] = self.summary
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationSummary:
        return cls(
            is_publishable=bool(data.get("isPublishable", False)),
            errors=[dict(e) for e in data.get("errors", [])],
            warnings=[dict(w) for w in data.get("warnings", [])],
            summary=data.get("summary"),
        )


@dataclass
class RunArtifacts:
    run_id: str
    started_at: str
    completed_at: str
    symbol: str
    post_type: str
    inputs: dict[str, Any] = field(default_factory=dict)
    sources_used: dict[str, bool] = field(default_factory=dict)
    used_fallback: bool = False
    missing_fields: list[str] = field(default_factory=list)
    provenance: dict[str, ProvenanceEntry] = field(default_factory=dict)
    raw_payloads: dict[str, SnapshotInfo] = field(default_factory=dict)
    generated_thread: list[str] = field(default_factory=list)
    charts: dict[str, str] = field(default_factory=dict)
    standalone_tweet: str | None = None
    validation: ValidationSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "runId": self.run_id,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "symbol": self.symbol,
            "postType": self.post_type,
            "inputs": dict(self.inputs),
            "sourcesUsed": dict(self.sources_used),
            "usedFallback": self.used_fallback,
            "missingFields": list(self.missing_fields),
            "provenance": {k: p.to_dict() for k, p in self.provenance.items()},
            "rawPayloads": {k: s.to_dict() for k, s in self.raw_payloads.items()},
            "generatedThread": list(self.generated_thread),
            "charts": dict(self.charts),
        }
        if self.standalone_tweet is not None:
            result["standaloneTweet"] = self.standalone_tweet
        if self.validation is not None:
            result["validation"] = self.validation.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunArtifacts:
        validation = data.get("validation")
        return cls(
            run_id=str(data["runId"]),
            started_at=str(data.get("startedAt", "")),
            completed_at=str(data.get("completedAt", "")),
            symbol=str(data.get("symbol", "")),
            post_type=str(data.get("postType", "")),
            inputs=dict(data.get("inputs") or {}),
            sources_used={k: bool(v) for k, v in (data.get("sourcesUsed") or {}).items()},
            used_fallback=bool(data.get("usedFallback", False)),
            missing_fields=list(data.get("missingFields") or []),
            provenance={k: ProvenanceEntry.from_dict(v) for k, v in (data.get("provenance") or {}).items()},
            raw_payloads={k: SnapshotInfo.from_dict(v) for k, v in (data.get("rawPayloads") or {}).items()},
            generated_thread=[str(p) for p in data.get("generatedThread") or []],
            charts=dict(data.get("charts") or {}),
            standalone_tweet=data.get("standaloneTweet"),
            validation=ValidationSummary.from_dict(validation) if isinstance(validation, dict) else None,
        )


@dataclass(frozen=True)
class RunPaths:
    root: Path
    run_dir: Path
    raw_dir: Path
    artifacts_dir: Path


@dataclass(frozen=True)
class RunHandle:
    run_id: str
    started_at: str
    paths: RunPaths


@dataclass(frozen=True)
class RunListing:
    """One row of `runs list`."""

    run_id: str
    started_at: str | None
    symbol: str | None
    post_type: str | None
    has_run: bool
    published: bool
