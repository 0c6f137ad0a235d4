"""
Generation runs: fetch flow, pick an event, build the post, gate it and
persist everything under one run id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..artifact.models import RunArtifacts, SnapshotInfo, ValidationSummary
from ..artifact.store import RUN_ARTIFACT, RunStore
from ..artifact.util import utc_now_iso
from ..config import Settings
from ..market.feeds import FlowData, LiveFeeds, MarketFeeds
from ..publish.gate import PublishValidationResult, validate_for_publish
from .builder import SOURCES, BuildContext, Candidate, ChainPostBuilder, PostBuilder

logger = logging.getLogger(__name__)

POST_TYPES = ("options", "dark_pool")

THREAD_ARTIFACT = "thread"
CHARTS_ARTIFACT = "charts"


@dataclass
class GenerateRunResult:
    run_id: str
    report: dict[str, Any]
    artifacts: RunArtifacts


def _percentiles(values: list[float]) -> list[float]:
    """Share of peers (in percent) whose value is at or below each value."""
    if not values:
        return []
    return [100.0 * sum(1 for other in values if other <= v) / len(values) for v in values]


def collect_candidates(flow: FlowData) -> list[Candidate]:
    """Options events first, then dark pool prints, in feed order."""
    candidates: list[Candidate] = []
    ranks = _percentiles([o.premium for o in flow.options])
    candidates.extend(Candidate("options", o, rank) for o, rank in zip(flow.options, ranks))
    ranks = _percentiles([d.value for d in flow.dark_pool])
    candidates.extend(Candidate("dark_pool", d, rank) for d, rank in zip(flow.dark_pool, ranks))
    return candidates


def select_candidate(
    candidates: list[Candidate],
    symbol: str | None = None,
    post_type: str | None = None,
) -> Candidate | None:
    if symbol:
        wanted = symbol.upper()
        candidates = [c for c in candidates if (c.ticker or "").upper() == wanted]
    if post_type:
        return next((c for c in candidates if c.kind == post_type), None)
    return candidates[0] if candidates else None


def build_report(artifacts: RunArtifacts, validation: PublishValidationResult) -> dict[str, Any]:
    return {
        "runId": artifacts.run_id,
        "startedAt": artifacts.started_at,
        "completedAt": artifacts.completed_at,
        "symbol": artifacts.symbol,
        "postType": artifacts.post_type,
        "sourcesUsed": dict(artifacts.sources_used),
        "usedFallback": artifacts.used_fallback,
        "missingFields": list(artifacts.missing_fields),
        "validationErrors": [e.to_dict() for e in validation.errors],
        "isPublishable": validation.is_publishable,
        "payloadSnapshots": {k: s.to_dict() for k, s in artifacts.raw_payloads.items()},
        "provenance": {k: p.to_dict() for k, p in validation.provenance.items()},
    }


def generate_run(
    store: RunStore,
    *,
    symbol: str | None = None,
    run_id: str | None = None,
    post_type: str | None = None,
    feeds: MarketFeeds | None = None,
    builder: PostBuilder | None = None,
) -> GenerateRunResult:
    """
    Run one generation end to end.

    Args:
        store: Where the run is persisted
        symbol: Only consider events for this ticker (case-insensitive)
        run_id: Reuse an explicit run id instead of generating one
        post_type: "options" or "dark_pool"; otherwise the first candidate wins
        feeds: Market data source (defaults to live feeds from default settings)
        builder: Post builder (defaults to ChainPostBuilder over `feeds`)

    Returns:
        GenerateRunResult with the run id, the report written to report.json
        and the persisted RunArtifacts
    """
    if post_type is not None and post_type not in POST_TYPES:
        raise ValueError(f"post_type must be one of {', '.join(POST_TYPES)}, got {post_type!r}")

    feeds = feeds or LiveFeeds.from_settings(Settings())
    builder = builder or ChainPostBuilder(feeds)

    run = store.create_run(run_id=run_id, symbol=symbol, post_type=post_type)
    raw_payloads: dict[str, SnapshotInfo] = {}
    snapshot = store.create_snapshotter(run.run_id, raw_payloads)

    flow = feeds.fetch_flow(snapshot)
    selected = select_candidate(collect_candidates(flow), symbol, post_type)

    if selected is None:
        logger.warning("run %s: no live candidates (symbol=%s, post_type=%s)", run.run_id, symbol, post_type)
        artifacts = RunArtifacts(
            run_id=run.run_id,
            started_at=run.started_at,
            completed_at=utc_now_iso(),
            symbol=symbol or "UNKNOWN",
            post_type="DARK_POOL_PRINT" if post_type == "dark_pool" else "OPTIONS_SWEEP",
            inputs={"symbol": symbol, "postType": post_type},
            sources_used={name: False for name in SOURCES},
            used_fallback=False,
            missing_fields=["UNUSUAL_WHALES_EVENT"],
            provenance={},
            raw_payloads=raw_payloads,
            generated_thread=[],
            charts={},
            validation=ValidationSummary(
                is_publishable=False,
                errors=[{"code": "NO_CANDIDATE", "message": "No live candidates available"}],
                warnings=[],
            ),
        )
        store.write_artifact(run.run_id, RUN_ARTIFACT, artifacts.to_dict())
        report = build_report(artifacts, validate_for_publish(artifacts))
        store.write_report(run.run_id, report)
        return GenerateRunResult(run_id=run.run_id, report=report, artifacts=artifacts)

    logger.info("run %s: selected %s %s", run.run_id, selected.kind, selected.ticker)
    post = builder.build(selected, BuildContext(run_id=run.run_id, snapshot=snapshot, raw_payloads=raw_payloads))

    artifacts = RunArtifacts(
        run_id=run.run_id,
        started_at=run.started_at,
        completed_at=utc_now_iso(),
        symbol=post.symbol,
        post_type=post.post_type,
        inputs={"symbol": post.symbol, "postType": post.post_type, "source": "unusual_whales"},
        sources_used=post.sources_used,
        used_fallback=post.used_fallback,
        missing_fields=post.missing_fields,
        provenance=post.provenance,
        raw_payloads=raw_payloads,
        generated_thread=post.thread,
        charts=post.charts,
        standalone_tweet=post.standalone_tweet,
        validation=ValidationSummary.from_gate(post.validation),
    )

    store.write_artifact(run.run_id, RUN_ARTIFACT, artifacts.to_dict())
    store.write_artifact(run.run_id, THREAD_ARTIFACT, {"parts": post.thread})
    store.write_artifact(run.run_id, CHARTS_ARTIFACT, post.charts)

    publish_validation = validate_for_publish(artifacts)
    report = build_report(artifacts, publish_validation)
    store.write_report(run.run_id, report)

    if not publish_validation.is_publishable:
        logger.warning(
            "run %s not publishable: %s",
            run.run_id,
            ", ".join(e.code for e in publish_validation.errors),
        )
    return GenerateRunResult(run_id=run.run_id, report=report, artifacts=artifacts)
