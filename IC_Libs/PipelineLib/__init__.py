"""
Imaging Cache Pipeline Library.

Modules:
    operation_queue: Deferred operations recorded on an image handle
    pipeline: Fluent multi-step builder bound to a CacheManager
"""

from IC_Libs.PipelineLib.operation_queue import (
    OperationKind,
    OperationQueue,
    QueuedOperation,
    QueueState,
)
from IC_Libs.PipelineLib.pipeline import ImagePipeline

__all__ = [
    "OperationKind",
    "OperationQueue",
    "QueuedOperation",
    "QueueState",
    "ImagePipeline",
]
