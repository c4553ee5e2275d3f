"""
Cloud conversion client and job completion strategies.
"""

from avconvert.services.cloud.client import DEFAULT_BASE_URL, CloudJobClient
from avconvert.services.cloud.completion import (
    CompletionStrategy,
    FixedDelayCompletion,
    PollingCompletion,
)

__all__ = [
    "DEFAULT_BASE_URL",
    "CloudJobClient",
    "CompletionStrategy",
    "FixedDelayCompletion",
    "PollingCompletion",
]
