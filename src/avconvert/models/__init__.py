"""
Data models for conversion items, cloud jobs, history and projects.
"""

from avconvert.models.cloud_job import CloudJob, CloudJobState
from avconvert.models.conversion import (
    BatchEvent,
    BatchSummary,
    ConversionOptions,
    ConvertibleItem,
    EngineChoice,
    ItemState,
)
from avconvert.models.history import HistoryRecord
from avconvert.models.project import ConversionProject

__all__ = [
    "BatchEvent",
    "BatchSummary",
    "CloudJob",
    "CloudJobState",
    "ConversionOptions",
    "ConversionProject",
    "ConvertibleItem",
    "EngineChoice",
    "HistoryRecord",
    "ItemState",
]
