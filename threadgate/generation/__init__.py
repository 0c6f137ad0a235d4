"""Post generation: charts, thread copy, the post builder and run orchestration."""

from .builder import BuildContext, BuiltPost, Candidate, ChainPostBuilder, PostBuilder
from .orchestrator import GenerateRunResult, generate_run

__all__ = [
    "BuildContext",
    "BuiltPost",
    "Candidate",
    "ChainPostBuilder",
    "GenerateRunResult",
    "PostBuilder",
    "generate_run",
]
