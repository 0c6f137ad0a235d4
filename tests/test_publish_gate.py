from __future__ import annotations

from dataclasses import replace

import pytest

from threadgate.artifact.models import ProvenanceEntry, RunArtifacts, SnapshotInfo, ValidationSummary
from threadgate.publish import validate_for_publish

SNAP = SnapshotInfo(path="/runs/r/raw/unusual_whales_options.json", sha256="a" * 64)


@pytest.fixture
def artifacts() -> RunArtifacts:
    return RunArtifacts(
        run_id="run_1_abcdef",
        started_at="2026-10-19T14:00:00+00:00",
        completed_at="2026-10-19T14:00:05+00:00",
        symbol="AAPL",
        post_type="OPTIONS_SWEEP",
        provenance={"unusualWhalesEvent": ProvenanceEntry("unusual_whales", SNAP.path, SNAP.sha256)},
        raw_payloads={"unusual_whales_options": SNAP},
        generated_thread=["1/1 hello"],
    )


def codes(artifacts: RunArtifacts) -> list[str]:
    return [e.code for e in validate_for_publish(artifacts).errors]


def test_complete_run_is_publishable(artifacts: RunArtifacts) -> None:
    result = validate_for_publish(artifacts)

    assert result.is_publishable
    assert result.provenance == artifacts.provenance


def test_fallback_always_blocks(artifacts: RunArtifacts) -> None:
    assert codes(replace(artifacts, used_fallback=True)) == ["MOCK_DATA_USED"]


def test_missing_fields_map_to_codes(artifacts: RunArtifacts) -> None:
    missing = ["OPTIONS_CHAIN", "GAMMA_EXPOSURE", "UNUSUAL_WHALES_EVENT", "HISTORICAL_VOLATILITY"]

    assert codes(replace(artifacts, missing_fields=missing)) == [
        "MISSING_OPTIONS_CHAIN",
        "MISSING_GAMMA_EXPOSURE",
        "MISSING_FLOW_EVENT",
        "MISSING_REQUIRED_FIELD",
    ]


def test_empty_thread(artifacts: RunArtifacts) -> None:
    assert codes(replace(artifacts, generated_thread=[])) == ["THREAD_MISSING"]


def test_no_evidenced_provenance(artifacts: RunArtifacts) -> None:
    run = replace(artifacts, provenance={"flowSummary": ProvenanceEntry(source="derived")})

    assert codes(run) == ["MISSING_RAW_PAYLOADS"]


def test_provenance_hash_must_be_recorded(artifacts: RunArtifacts) -> None:
    stray = ProvenanceEntry("polygon", "/runs/r/raw/other.json", "b" * 64)
    run = replace(artifacts, provenance={**artifacts.provenance, "polygonQuote": stray})

    result = validate_for_publish(run)

    assert [e.code for e in result.errors] == ["PROVENANCE_UNVERIFIED"]
    assert result.errors[0].field == "polygonQuote"


def test_result_serializes(artifacts: RunArtifacts) -> None:
    data = validate_for_publish(replace(artifacts, used_fallback=True)).to_dict()

    assert data["isPublishable"] is False
    assert data["errors"][0]["code"] == "MOCK_DATA_USED"
    assert data["provenance"]["unusualWhalesEvent"]["payloadHash"] == "a" * 64


def test_gate_rejection_blocks(artifacts: RunArtifacts) -> None:
    verdict = ValidationSummary(
        is_publishable=False,
        errors=[
            {"code": "WRONG_COPY_LOGIC", "message": "protection under call skew"},
            {"code": "SVG_PLACEHOLDER_OR_NAN", "message": "NaN"},
        ],
    )

    result = validate_for_publish(replace(artifacts, validation=verdict))

    assert [(e.code, e.field) for e in result.errors] == [
        ("VALIDATION_GATE_FAILED", "WRONG_COPY_LOGIC"),
        ("VALIDATION_GATE_FAILED", "SVG_PLACEHOLDER_OR_NAN"),
    ]


def test_gate_approval_and_warnings_do_not_block(artifacts: RunArtifacts) -> None:
    verdict = ValidationSummary(is_publishable=True, warnings=[{"code": "MAX_PAIN_OUT_OF_RANGE", "message": "w"}])

    assert codes(replace(artifacts, validation=verdict)) == []
