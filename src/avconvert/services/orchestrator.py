"""
Conversion Orchestrator

Drives a batch of files through the selected engine:

- Each item is owned by one coroutine; at most ``max_concurrent_items`` run
  at once.
- A failed native export is retried once with the shell engine
  (``auto_fallback``). Shell and cloud failures are final for the item.
- Every item produces exactly one terminal event; batch progress is
  completed / total and never decreases.
- Successful items are appended to the history store and get best-effort
  metadata attributes. Neither step can change the item's outcome.
- A CancellationToken stops new items from starting. Items already running
  finish, but are reported CANCELLED and are not added to history.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from avconvert.config import ConverterConfig
from avconvert.errors import ConversionError
from avconvert.models.conversion import (
    BatchEvent,
    BatchSummary,
    ConversionOptions,
    ConvertibleItem,
    EngineChoice,
    ItemState,
)
from avconvert.services.engines import ConversionEngine, build_engines
from avconvert.services.cloud import CloudJobClient
from avconvert.services.file_metadata import apply_metadata_attributes
from avconvert.services.history_store import HistoryStore

logger = logging.getLogger(__name__)

EventCallback = Callable[[BatchEvent], None]
BatchProgressCallback = Callable[[float], None]
ItemProgressCallback = Callable[[Path, float], None]
CompleteCallback = Callable[[BatchSummary], None]


class CancellationToken:
    """Thread-safe cancellation flag for one batch run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.info("Batch cancellation requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class ConversionOrchestrator:
    """Runs batches of ConvertibleItems through conversion engines."""

    def __init__(
        self,
        engines: Dict[EngineChoice, ConversionEngine],
        history_store: Optional[HistoryStore] = None,
        max_concurrent_items: int = 2,
        auto_fallback: bool = True,
        write_metadata_attributes: bool = True,
    ):
        """
        Args:
            engines: Available engines by choice
            history_store: Receives one record per successful conversion
            max_concurrent_items: Upper bound on items converting at once
            auto_fallback: Retry failed native conversions with the shell engine
            write_metadata_attributes: Set title/artist/album attributes on outputs
        """
        if max_concurrent_items < 1:
            raise ValueError("max_concurrent_items must be at least 1")
        self.engines = dict(engines)
        self.history_store = history_store
        self.max_concurrent_items = max_concurrent_items
        self.auto_fallback = auto_fallback
        self.write_metadata_attributes = write_metadata_attributes

    @classmethod
    def from_config(
        cls,
        config: ConverterConfig,
        cloud_client: Optional[CloudJobClient] = None,
        history_store: Optional[HistoryStore] = None,
    ) -> "ConversionOrchestrator":
        """Build an orchestrator with the engines and history store from config."""
        if history_store is None:
            history_store = HistoryStore(Path(config.history_path), limit=config.history_limit)
        return cls(
            engines=build_engines(config, cloud_client),
            history_store=history_store,
            max_concurrent_items=config.max_concurrent_items,
            auto_fallback=config.auto_fallback,
            write_metadata_attributes=config.write_metadata_attributes,
        )

    @staticmethod
    def output_path_for(
        source_path: Path, output_format: str, output_dir: Optional[Path] = None
    ) -> Path:
        """<output_dir or source directory>/<source stem>.<output_format>"""
        source_path = Path(source_path)
        directory = Path(output_dir) if output_dir is not None else source_path.parent
        return directory / f"{source_path.stem}.{output_format}"

    async def _attempt(
        self,
        engine: ConversionEngine,
        item: ConvertibleItem,
        output_path: Path,
        options: ConversionOptions,
        on_item_progress: Optional[ItemProgressCallback],
    ) -> Optional[ConversionError]:
        """Run one engine; returns the failure, or None on success."""

        def progress(fraction: float) -> None:
            if on_item_progress:
                on_item_progress(item.source_path, fraction)

        try:
            await engine.convert(item.source_path, output_path, options, progress)
            return None
        except ConversionError as e:
            logger.warning(f"{engine.name} engine failed for {item.name} ({e.code}): {e.message}")
            return e
        except Exception as e:
            logger.exception(f"Unexpected {engine.name} engine error for {item.name}")
            return ConversionError(f"Unexpected {engine.name} engine error: {e}")

    async def _convert_item(
        self,
        item: ConvertibleItem,
        engine_choice: EngineChoice,
        output_path: Path,
        options: ConversionOptions,
        cancel_token: CancellationToken,
        on_item_progress: Optional[ItemProgressCallback],
    ) -> Tuple[Optional[EngineChoice], bool, Optional[ConversionError]]:
        """
        Convert one item, with the native -> shell fallback.

        Returns:
            (engine that succeeded or None, whether fallback ran, final error or None)
        """
        error = await self._attempt(
            self.engines[engine_choice], item, output_path, options, on_item_progress
        )
        if error is None:
            return engine_choice, False, None

        can_fall_back = (
            engine_choice == EngineChoice.NATIVE
            and self.auto_fallback
            and EngineChoice.SHELL in self.engines
        )
        if not can_fall_back or cancel_token.is_cancelled:
            return None, False, error

        logger.info(f"Retrying {item.name} with shell engine after native failure")
        fallback_error = await self._attempt(
            self.engines[EngineChoice.SHELL], item, output_path, options, on_item_progress
        )
        if fallback_error is None:
            return EngineChoice.SHELL, True, None

        fallback_error.message = f"{fallback_error.message} (after native failure: {error.message})"
        return None, True, fallback_error

    def _record_success(self, item: ConvertibleItem, options: ConversionOptions) -> None:
        """Best-effort history append and metadata attributes."""
        if self.history_store is not None:
            try:
                self.history_store.append(item.name, item.output_path)
            except (OSError, ValueError) as e:
                logger.warning(f"Could not record history for {item.name}: {e}")

        if self.write_metadata_attributes and options.metadata:
            apply_metadata_attributes(
                item.output_path, title=options.title, artist=options.artist, album=options.album
            )

    async def run_batch(
        self,
        items: Sequence[ConvertibleItem],
        engine: EngineChoice,
        options: ConversionOptions,
        output_dir: Optional[Path] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_event: Optional[EventCallback] = None,
        on_progress: Optional[BatchProgressCallback] = None,
        on_item_progress: Optional[ItemProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> BatchSummary:
        """
        Convert a batch of items.

        Args:
            items: Items to convert (PENDING)
            engine: Primary engine
            options: Conversion options for every item
            output_dir: Destination folder (each source's folder when None)
            cancel_token: Stops new items from starting when cancelled
            on_event: Receives one terminal BatchEvent per item
            on_progress: Receives batch progress after each terminal event
            on_item_progress: Receives (source path, fraction) from engines
            on_complete: Called once with the summary after the last event

        Returns:
            BatchSummary; per-item failures never raise

        Raises:
            ValueError: If the engine is not configured
        """
        engine = EngineChoice(engine)
        if engine not in self.engines:
            raise ValueError(f"Engine '{engine.value}' is not configured")

        token = cancel_token or CancellationToken()
        summary = BatchSummary(total=len(items))
        semaphore = asyncio.Semaphore(self.max_concurrent_items)

        logger.info(
            f"Starting batch: {len(items)} file(s), engine={engine.value}, "
            f"format={options.output_format}"
        )

        def finish(item: ConvertibleItem, fell_back: bool = False) -> None:
            event = BatchEvent.from_item(item, fell_back=fell_back)
            summary.events.append(event)
            if on_event:
                on_event(event)
            if on_progress:
                on_progress(summary.progress)

        async def run_one(item: ConvertibleItem) -> None:
            async with semaphore:
                if token.is_cancelled:
                    item.cancel()
                    finish(item)
                    return

                item.start()
                output_path = self.output_path_for(item.source_path, options.output_format, output_dir)
                used, fell_back, error = await self._convert_item(
                    item, engine, output_path, options, token, on_item_progress
                )

                if token.is_cancelled:
                    item.cancel()
                    logger.info(f"Discarding result for {item.name}: batch cancelled")
                elif error is None:
                    item.succeed(output_path, used)
                    logger.info(f"Converted {item.name} -> {output_path.name} ({used.value})")
                    # Disk writes stay off the event loop
                    loop = asyncio.get_running_loop()
                    await loop.run_in_executor(None, self._record_success, item, options)
                else:
                    item.fail(error.code, error.message)
                    logger.error(f"Conversion failed for {item.name}: {error.message}")

                finish(item, fell_back)

        await asyncio.gather(*(run_one(item) for item in items))
        if not items and on_progress:
            on_progress(summary.progress)

        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Batch finished: {summary.succeeded} succeeded, {summary.failed} failed, "
            f"{summary.cancelled} cancelled in {summary.elapsed_seconds:.1f}s"
        )
        if on_complete:
            on_complete(summary)
        return summary

    async def convert_paths(
        self,
        input_paths: Iterable[Path],
        engine: EngineChoice,
        options: ConversionOptions,
        output_dir: Optional[Path] = None,
        **callbacks,
    ) -> BatchSummary:
        """Convenience wrapper building ConvertibleItems from raw paths."""
        items: List[ConvertibleItem] = [ConvertibleItem(Path(p)) for p in input_paths]
        return await self.run_batch(items, engine, options, output_dir=output_dir, **callbacks)


def failed_events(summary: BatchSummary) -> List[BatchEvent]:
    """Events of items that ended FAILED."""
    return [e for e in summary.events if e.state == ItemState.FAILED]
