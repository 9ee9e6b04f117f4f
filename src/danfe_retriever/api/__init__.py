"""
User-facing API interfaces for danfe-retriever.

This module provides high-level orchestration on top of the retrieval
service and the XML reader.
"""

from danfe_retriever.api.pipeline import DanfePipeline
from danfe_retriever.api.pipeline_parallel import BatchFetchPipeline

__all__ = [
    'DanfePipeline',
    'BatchFetchPipeline',
]
