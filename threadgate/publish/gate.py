"""
Second-stage publish gate.

Re-derives publishability from a persisted run before every publish. The
validation gate verdict stored with the run is honored as well: a run the
gate rejected at generation never publishes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..artifact.models import ProvenanceEntry, RunArtifacts

MISSING_FIELD_CODES: dict[str, str] = {
    "OPTIONS_CHAIN": "MISSING_OPTIONS_CHAIN",
    "POLYGON_QUOTE": "MISSING_POLYGON_QUOTE",
    "VOLATILITY_SMILE": "MISSING_VOLATILITY_SMILE",
    "OI_LADDER": "MISSING_OI_LADDER",
    "IV_TERM_STRUCTURE": "MISSING_IV_TERM_STRUCTURE",
    "GAMMA_EXPOSURE": "MISSING_GAMMA_EXPOSURE",
    "UNUSUAL_WHALES_EVENT": "MISSING_FLOW_EVENT",
}
GENERIC_MISSING_CODE = "MISSING_REQUIRED_FIELD"


@dataclass(frozen=True)
class PublishValidationError:
    code: str
    message: str
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field is not None:
            result["field"] = self.field
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublishValidationError:
        return cls(code=str(data.get("code", "")), message=str(data.get("message", "")), field=data.get("field"))


@dataclass
class PublishValidationResult:
    errors: list[PublishValidationError] = field(default_factory=list)
    provenance: dict[str, ProvenanceEntry] = field(default_factory=dict)

    @property
    def is_publishable(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "isPublishable": self.is_publishable,
            "errors": [e.to_dict() for e in self.errors],
            "provenance": {k: p.to_dict() for k, p in self.provenance.items()},
        }


def validate_for_publish(artifacts: RunArtifacts) -> PublishValidationResult:
    """
    Check a persisted run for publish-blocking conditions.

    Fallback data always blocks, whatever else the run contains.
    """
    errors: list[PublishValidationError] = []

    if artifacts.used_fallback:
        errors.append(
            PublishValidationError(
                "MOCK_DATA_USED",
                "Fallback/mock data was used during generation. Publishing is blocked.",
            )
        )

    for missing in artifacts.missing_fields:
        errors.append(
            PublishValidationError(
                MISSING_FIELD_CODES.get(missing, GENERIC_MISSING_CODE),
                f"Required upstream data missing: {missing}",
                missing,
            )
        )

    if not artifacts.generated_thread:
        errors.append(PublishValidationError("THREAD_MISSING", "Generated thread is empty or missing.", "thread"))

    verdict = artifacts.validation
    if verdict is not None and not verdict.is_publishable:
        gate_codes = [str(e.get("code") or "UNKNOWN") for e in verdict.errors] or ["UNKNOWN"]
        for code in gate_codes:
            errors.append(
                PublishValidationError(
                    "VALIDATION_GATE_FAILED",
                    f"Validation gate rejected the run at generation: {code}",
                    code,
                )
            )

    evidenced = [entry for entry in artifacts.provenance.values() if entry.has_payload]
    if not evidenced:
        errors.append(
            PublishValidationError("MISSING_RAW_PAYLOADS", "No raw payload snapshots were recorded for this run.")
        )

    recorded = {info.sha256 for info in artifacts.raw_payloads.values()}
    for key, entry in artifacts.provenance.items():
        if entry.payload_hash and entry.payload_hash not in recorded:
            errors.append(
                PublishValidationError(
                    "PROVENANCE_UNVERIFIED",
                    f"Provenance entry {key} ({entry.source}) references a payload not recorded in this run",
                    key,
                )
            )

    return PublishValidationResult(errors=errors, provenance=dict(artifacts.provenance))
