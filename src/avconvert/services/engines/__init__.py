"""
Conversion engines.

Each engine implements ConversionEngine.convert; the orchestrator selects
one by EngineChoice.
"""

from typing import Dict, Optional

from avconvert.config import ConverterConfig
from avconvert.models.conversion import EngineChoice
from avconvert.services.cloud import CloudJobClient, FixedDelayCompletion, PollingCompletion
from avconvert.services.engines.base import ConversionEngine, ProgressCallback
from avconvert.services.engines.cloud import CloudJobEngine
from avconvert.services.engines.native import NATIVE_PRESETS, NativeFrameworkEngine
from avconvert.services.engines.shell import ShellTranscodeEngine, locate_tool

__all__ = [
    "CloudJobEngine",
    "ConversionEngine",
    "NATIVE_PRESETS",
    "NativeFrameworkEngine",
    "ProgressCallback",
    "ShellTranscodeEngine",
    "build_cloud_client",
    "build_engines",
]


def build_cloud_client(config: ConverterConfig, api_key: str) -> CloudJobClient:
    """Create a cloud client using the configured completion strategy."""
    if config.cloud_completion == "poll":
        completion = PollingCompletion(
            interval=config.cloud_poll_interval,
            backoff=config.cloud_poll_backoff,
            max_wait=config.cloud_max_wait,
        )
    else:
        completion = FixedDelayCompletion(delay=config.cloud_fixed_delay)

    return CloudJobClient(
        api_key=api_key,
        base_url=config.cloud_base_url,
        completion=completion,
        timeout=config.cloud_request_timeout,
    )


def build_engines(
    config: ConverterConfig, cloud_client: Optional[CloudJobClient] = None
) -> Dict[EngineChoice, ConversionEngine]:
    """
    Instantiate the engines described by the configuration.

    The cloud engine is only present when a cloud client is supplied.
    """
    shell = ShellTranscodeEngine(
        search_paths=config.ffmpeg_paths,
        reference_duration=config.progress_reference_seconds,
        probe_duration=config.probe_duration,
    )
    engines: Dict[EngineChoice, ConversionEngine] = {
        EngineChoice.NATIVE: NativeFrameworkEngine(ffmpeg_cmd=locate_tool(config.ffmpeg_paths) or "ffmpeg"),
        EngineChoice.SHELL: shell,
    }
    if cloud_client is not None:
        engines[EngineChoice.CLOUD] = CloudJobEngine(cloud_client)
    return engines
