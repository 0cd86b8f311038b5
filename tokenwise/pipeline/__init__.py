# Pipeline orchestration: startup wiring, re-rank, monitoring control.

from tokenwise.pipeline.orchestrator import PipelineOrchestrator, build_pipeline

__all__ = ["PipelineOrchestrator", "build_pipeline"]
