"""
Workflows module - Pipeline orchestration for ingestion, enrichment and digests.
"""
from storyline.workflows.base import PipelineStage
from storyline.workflows.pipeline_factory import NewsPipeline, create_pipeline

__all__ = [
    "PipelineStage",
    "NewsPipeline",
    "create_pipeline",
]
