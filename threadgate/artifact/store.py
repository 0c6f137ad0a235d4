"""
Per-run artifact store.

Layout under the runs directory:

    <runId>/inputs.json
    <runId>/report.json
    <runId>/publish.json
    <runId>/raw/<name>.json
    <runId>/artifacts/<name>.json

Every write serializes the payload once, writes it to a temp file and renames
it into place, and returns the sha256 of exactly those bytes. I/O errors are
not caught here.
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from ..errors import InvalidRunIdError, RunLockedError, RunNotFoundError
from .models import RunArtifacts, RunHandle, RunListing, RunPaths, SnapshotInfo
from .util import (
    dumps_canonical,
    is_valid_run_id,
    new_run_id,
    pid_is_running,
    sanitize_name,
    sha256_hex,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

Snapshotter = Callable[[str, Any], SnapshotInfo]

INPUTS_FILE = "inputs.json"
REPORT_FILE = "report.json"
PUBLISH_FILE = "publish.json"
RUN_ARTIFACT = "run"
PUBLISH_ARTIFACT = "publish"

# A lock without a readable pid older than this is treated as abandoned.
STALE_LOCK_AGE_S = 300


class RunStore:
    """
    Filesystem store for generation runs.

    Artifacts are append-only by name: callers write new names rather than
    updating old ones. The publish result is the one record written after
    generation, and it lives beside the run artifact rather than inside it.
    """

    def __init__(self, runs_dir: Path):
        self.root = Path(runs_dir).resolve()

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def paths(self, run_id: str) -> RunPaths:
        """
        Directory layout for one run.

        Raises:
            InvalidRunIdError: run_id is not made of [A-Za-z0-9_-]
        """
        if not is_valid_run_id(run_id):
            raise InvalidRunIdError(run_id)
        run_dir = self.root / run_id
        return RunPaths(
            root=self.root,
            run_dir=run_dir,
            raw_dir=run_dir / "raw",
            artifacts_dir=run_dir / "artifacts",
        )

    def run_exists(self, run_id: str) -> bool:
        return self.paths(run_id).run_dir.is_dir()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _write_json_with_hash(self, path: Path, payload: Any) -> SnapshotInfo:
        data = dumps_canonical(payload).encode("utf-8")
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write atomically (write to temp, then rename)
        temp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            temp_path.write_bytes(data)
            temp_path.replace(path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        info = SnapshotInfo(path=str(path), sha256=sha256_hex(data))
        logger.debug("wrote %s (%d bytes, sha256=%s)", path, len(data), info.sha256[:12])
        return info

    def create_run(
        self,
        run_id: str | None = None,
        symbol: str | None = None,
        post_type: str | None = None,
    ) -> RunHandle:
        """
        Create the on-disk scaffold for a run and record its inputs.

        inputs.json is created exclusively. If it already exists (a reused run
        id) it is left untouched and the original start time is returned.
        """
        run_id = run_id or new_run_id()
        paths = self.paths(run_id)
        paths.raw_dir.mkdir(parents=True, exist_ok=True)
        paths.artifacts_dir.mkdir(parents=True, exist_ok=True)

        started_at = utc_now_iso()
        inputs = {
            "runId": run_id,
            "startedAt": started_at,
            "symbol": symbol,
            "postType": post_type,
        }

        inputs_path = paths.run_dir / INPUTS_FILE
        try:
            with inputs_path.open("x", encoding="utf-8") as f:
                f.write(dumps_canonical(inputs))
            logger.info("created run %s", run_id)
        except FileExistsError:
            existing = json.loads(inputs_path.read_text(encoding="utf-8"))
            started_at = str(existing.get("startedAt") or started_at)
            logger.info("reusing run %s (inputs unchanged)", run_id)

        return RunHandle(run_id=run_id, started_at=started_at, paths=paths)

    def write_artifact(self, run_id: str, name: str, payload: Any) -> SnapshotInfo:
        return self._write_json_with_hash(self.paths(run_id).artifacts_dir / f"{name}.json", payload)

    def write_report(self, run_id: str, payload: Any) -> SnapshotInfo:
        return self._write_json_with_hash(self.paths(run_id).run_dir / REPORT_FILE, payload)

    def write_raw_snapshot(self, run_id: str, name: str, payload: Any) -> SnapshotInfo:
        safe_name = sanitize_name(name)
        return self._write_json_with_hash(self.paths(run_id).raw_dir / f"{safe_name}.json", payload)

    def write_publish_result(self, run_id: str, payload: Any) -> SnapshotInfo:
        """Persist the publish outcome as artifacts/publish.json and publish.json."""
        self.write_artifact(run_id, PUBLISH_ARTIFACT, payload)
        return self._write_json_with_hash(self.paths(run_id).run_dir / PUBLISH_FILE, payload)

    def create_snapshotter(self, run_id: str, raw_payloads: dict[str, SnapshotInfo]) -> Snapshotter:
        """
        Return a callable that snapshots a raw payload and records it.

        The caller owns `raw_payloads`; each snapshot is stored under the name
        it was taken with (unsanitized).
        """

        def snapshot(name: str, payload: Any) -> SnapshotInfo:
            info = self.write_raw_snapshot(run_id, name, payload)
            raw_payloads[name] = info
            return info

        return snapshot

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def load_run_artifacts(self, run_id: str) -> RunArtifacts:
        """Read back the canonical run artifact (artifacts/run.json)."""
        path = self.paths(run_id).artifacts_dir / f"{RUN_ARTIFACT}.json"
        if not path.exists():
            raise RunNotFoundError(run_id)
        return RunArtifacts.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def read_inputs(self, run_id: str) -> dict[str, Any] | None:
        path = self.paths(run_id).run_dir / INPUTS_FILE
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def read_report(self, run_id: str) -> dict[str, Any] | None:
        path = self.paths(run_id).run_dir / REPORT_FILE
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def read_publish_result(self, run_id: str) -> dict[str, Any] | None:
        path = self.paths(run_id).run_dir / PUBLISH_FILE
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def list_runs(self) -> list[RunListing]:
        """All runs under the root, oldest first."""
        if not self.root.exists():
            return []

        listings: list[RunListing] = []
        for run_dir in sorted(p for p in self.root.iterdir() if p.is_dir() and is_valid_run_id(p.name)):
            run_id = run_dir.name
            inputs = self.read_inputs(run_id) or {}
            publish = self.read_publish_result(run_id) or {}
            listings.append(
                RunListing(
                    run_id=run_id,
                    started_at=inputs.get("startedAt"),
                    symbol=inputs.get("symbol"),
                    post_type=inputs.get("postType"),
                    has_run=(run_dir / "artifacts" / f"{RUN_ARTIFACT}.json").exists(),
                    published=bool(publish.get("tweetIds")),
                )
            )

        listings.sort(key=lambda r: (r.started_at or "", r.run_id))
        return listings

    # -------------------------------------------------------------------------
    # Integrity
    # -------------------------------------------------------------------------

    @staticmethod
    def verify_snapshot(info: SnapshotInfo) -> bool:
        """Recompute the sha256 of a persisted payload and compare."""
        path = Path(info.path)
        if not path.exists():
            return False
        return sha256_hex(path.read_bytes()) == info.sha256

    def verify_run(self, run_id: str) -> dict[str, bool]:
        """Verify every raw payload recorded by a run; name -> intact."""
        artifacts = self.load_run_artifacts(run_id)
        return {name: self.verify_snapshot(info) for name, info in artifacts.raw_payloads.items()}

    # -------------------------------------------------------------------------
    # Locks
    # -------------------------------------------------------------------------

    @contextmanager
    def exclusive_lock(self, run_id: str, name: str) -> Iterator[Path]:
        """
        Hold `<runId>/<name>.lock` for the duration of the block.

        The lock file is created with O_CREAT | O_EXCL, so exactly one holder
        per host wins. A lock left behind by a dead holder is removed and
        acquisition retried once; a live holder raises RunLockedError.
        """
        run_dir = self.paths(run_id).run_dir
        if not run_dir.is_dir():
            raise RunNotFoundError(run_id)

        lock_path = run_dir / f"{name}.lock"
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            if not _lock_is_stale(lock_path):
                raise RunLockedError(run_id, name) from None
            logger.warning("removing stale lock %s", lock_path)
            lock_path.unlink(missing_ok=True)
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                raise RunLockedError(run_id, name) from None

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json.dumps({"pid": os.getpid(), "acquiredAt": utc_now_iso()}))
            logger.debug("acquired %s", lock_path)
            yield lock_path
        finally:
            lock_path.unlink(missing_ok=True)
            logger.debug("released %s", lock_path)


def _lock_is_stale(lock_path: Path) -> bool:
    """A lock is stale when its recorded holder is gone, or it has no readable pid and is old."""
    try:
        age = time.time() - lock_path.stat().st_mtime
        text = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return True

    try:
        pid = int(json.loads(text)["pid"])
    except (ValueError, KeyError, TypeError):
        return age > STALE_LOCK_AGE_S
    return not pid_is_running(pid)
