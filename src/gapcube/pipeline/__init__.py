"""Pipeline modules.

- orchestrator: Run controller (cube, composite, chunked gap fill)
- processor: Chunk worker threads
- summary: Run summary and failure records
"""

from gapcube.pipeline.orchestrator import StackOrchestrator, StackResult
from gapcube.pipeline.processor import ChunkJob, ChunkProcessor, ChunkResult
from gapcube.pipeline.summary import RunSummary

__all__ = [
    "StackOrchestrator",
    "StackResult",
    "ChunkJob",
    "ChunkProcessor",
    "ChunkResult",
    "RunSummary",
]
