"""
avconvert configuration module.
"""

from avconvert.config.converter_config import (
    API_KEY_ENV,
    APIKeyNotFoundError,
    ConverterConfig,
    get_api_key,
)

__all__ = [
    "API_KEY_ENV",
    "APIKeyNotFoundError",
    "ConverterConfig",
    "get_api_key",
]
