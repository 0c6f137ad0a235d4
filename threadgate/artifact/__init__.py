"""Run artifact store: content-hashed, provenance-tracked generation runs."""

from .models import (
    ProvenanceEntry,
    RunArtifacts,
    RunHandle,
    RunListing,
    RunPaths,
    SnapshotInfo,
    ValidationSummary,
)
from .store import RunStore, Snapshotter
from .util import new_run_id

__all__ = [
    "ProvenanceEntry",
    "RunArtifacts",
    "RunHandle",
    "RunListing",
    "RunPaths",
    "RunStore",
    "SnapshotInfo",
    "Snapshotter",
    "ValidationSummary",
    "new_run_id",
]
