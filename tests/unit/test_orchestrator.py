"""
Unit tests for the conversion orchestrator.

Engines are replaced with FakeEngine (tests/conftest.py); the history store
is a real HistoryStore under tmp_path.
"""

import asyncio
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from avconvert.config import ConverterConfig
from avconvert.errors import (
    ProcessError,
    RemoteJobFailedError,
    ToolNotFoundError,
    UnsupportedConversionError,
)
from avconvert.models.conversion import ConversionOptions, ConvertibleItem, EngineChoice, ItemState
from avconvert.services.engines import NativeFrameworkEngine, ShellTranscodeEngine
from avconvert.services.history_store import HistoryStore
from avconvert.services.orchestrator import CancellationToken, ConversionOrchestrator, failed_events


@pytest.fixture
def history(tmp_path) -> HistoryStore:
    return HistoryStore(tmp_path / "history" / "history.json")


def orchestrator_with(engines, history=None, **kwargs) -> ConversionOrchestrator:
    return ConversionOrchestrator(
        {e.choice: e for e in engines},
        history_store=history,
        write_metadata_attributes=False,
        **kwargs,
    )


class TestBatchRun:
    """Test event and progress reporting."""

    @pytest.mark.asyncio
    async def test_one_event_per_item(self, make_engine, media_files, mp3_options, history):
        shell = make_engine(EngineChoice.SHELL)
        orchestrator = orchestrator_with([shell], history)
        events, progress, completed = [], [], []

        summary = await orchestrator.convert_paths(
            media_files,
            EngineChoice.SHELL,
            mp3_options,
            on_event=events.append,
            on_progress=progress.append,
            on_complete=completed.append,
        )

        assert len(events) == 2
        assert {e.source_path for e in events} == set(media_files)
        assert all(e.state == ItemState.SUCCEEDED for e in events)
        assert all(e.output_path.suffix == ".mp3" for e in events)
        assert progress == sorted(progress)
        assert progress[-1] == 1.0
        assert completed == [summary]
        assert summary.succeeded == 2
        assert not summary.has_errors
        assert len(history.load()) == 2

    @pytest.mark.asyncio
    async def test_output_dir(self, make_engine, media_files, mp3_options, tmp_path):
        out_dir = tmp_path / "converted"
        out_dir.mkdir()
        orchestrator = orchestrator_with([make_engine(EngineChoice.SHELL)])

        summary = await orchestrator.convert_paths(media_files, EngineChoice.SHELL, mp3_options, output_dir=out_dir)

        assert sorted(e.output_path for e in summary.events) == [out_dir / "a.mp3", out_dir / "b.mp3"]

    @pytest.mark.asyncio
    async def test_item_progress_forwarded(self, make_engine, media_files, mp3_options):
        orchestrator = orchestrator_with([make_engine(EngineChoice.SHELL)])
        item_progress = []

        await orchestrator.convert_paths(
            media_files[:1], EngineChoice.SHELL, mp3_options,
            on_item_progress=lambda path, fraction: item_progress.append((path.name, fraction)),
        )

        assert item_progress == [("a.wav", 0.5), ("a.wav", 1.0)]

    @pytest.mark.asyncio
    async def test_empty_batch(self, make_engine, mp3_options):
        orchestrator = orchestrator_with([make_engine(EngineChoice.SHELL)])
        progress, completed = [], []

        summary = await orchestrator.run_batch(
            [], EngineChoice.SHELL, mp3_options, on_progress=progress.append, on_complete=completed.append
        )

        assert summary.total == 0
        assert progress == [1.0]
        assert len(completed) == 1

    @pytest.mark.asyncio
    async def test_unconfigured_engine(self, make_engine, media_files, mp3_options):
        orchestrator = orchestrator_with([make_engine(EngineChoice.SHELL)])
        with pytest.raises(ValueError, match="cloud"):
            await orchestrator.convert_paths(media_files, EngineChoice.CLOUD, mp3_options)

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, make_engine, tmp_path, mp3_options):
        running = 0
        peak = 0

        async def track(path):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        files = []
        for i in range(6):
            path = tmp_path / f"f{i}.wav"
            path.write_bytes(b"RIFF")
            files.append(path)

        shell = make_engine(EngineChoice.SHELL, on_convert=track)
        orchestrator = orchestrator_with([shell], max_concurrent_items=2)
        summary = await orchestrator.convert_paths(files, EngineChoice.SHELL, mp3_options)

        assert summary.succeeded == 6
        assert peak <= 2

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            ConversionOrchestrator({}, max_concurrent_items=0)

    def test_output_path_for(self):
        assert ConversionOrchestrator.output_path_for(Path("/music/song.wav"), "mp3") == Path("/music/song.mp3")
        assert ConversionOrchestrator.output_path_for(
            Path("/music/song.wav"), "m4a", Path("/out")
        ) == Path("/out/song.m4a")


class TestFallback:
    """Test native -> shell fallback."""

    @pytest.mark.asyncio
    async def test_native_failure_falls_back_to_shell(self, make_engine, media_files, mp3_options, history):
        native = make_engine(EngineChoice.NATIVE, error=UnsupportedConversionError("mp3", "native"))
        shell = make_engine(EngineChoice.SHELL)
        orchestrator = orchestrator_with([native, shell], history)

        summary = await orchestrator.convert_paths(media_files[:1], EngineChoice.NATIVE, mp3_options)

        event = summary.events[0]
        assert event.state == ItemState.SUCCEEDED
        assert event.engine == EngineChoice.SHELL
        assert event.fell_back is True
        assert shell.calls == media_files[:1]
        assert len(history.load()) == 1

    @pytest.mark.asyncio
    async def test_fallback_disabled(self, make_engine, media_files, mp3_options):
        native = make_engine(EngineChoice.NATIVE, error=UnsupportedConversionError("mp3", "native"))
        shell = make_engine(EngineChoice.SHELL)
        orchestrator = orchestrator_with([native, shell], auto_fallback=False)

        summary = await orchestrator.convert_paths(media_files[:1], EngineChoice.NATIVE, mp3_options)

        assert summary.events[0].state == ItemState.FAILED
        assert summary.events[0].error_code == "UnsupportedConversion"
        assert shell.calls == []

    @pytest.mark.asyncio
    async def test_native_flac_without_ffmpeg(self, media_files, history, tmp_path):
        """Native has no flac preset and ffmpeg is missing: the item fails with ToolNotFound."""
        shell = ShellTranscodeEngine(search_paths=[str(tmp_path / "nope" / "ffmpeg")])
        orchestrator = ConversionOrchestrator(
            {EngineChoice.NATIVE: NativeFrameworkEngine(), EngineChoice.SHELL: shell},
            history_store=history,
            write_metadata_attributes=False,
        )

        with patch("avconvert.services.engines.shell.shutil.which", return_value=None):
            summary = await orchestrator.convert_paths(
                media_files[:1], EngineChoice.NATIVE, ConversionOptions(output_format="flac")
            )

        event = summary.events[0]
        assert event.state == ItemState.FAILED
        assert event.error_code == "ToolNotFound"
        assert event.fell_back is True
        assert "after native failure" in event.error_message
        assert history.load() == []

    @pytest.mark.asyncio
    async def test_shell_failure_is_final(self, make_engine, media_files, mp3_options):
        native = make_engine(EngineChoice.NATIVE)
        shell = make_engine(EngineChoice.SHELL, error=ProcessError(1, "Unknown encoder"))
        orchestrator = orchestrator_with([native, shell])

        summary = await orchestrator.convert_paths(media_files, EngineChoice.SHELL, mp3_options)

        assert summary.failed == 2
        assert native.calls == []
        assert {e.error_code for e in failed_events(summary)} == {"ProcessError"}

    @pytest.mark.asyncio
    async def test_cloud_failure_has_no_fallback(self, make_engine, media_files, mp3_options):
        cloud = make_engine(EngineChoice.CLOUD, error=RemoteJobFailedError("Invalid API key", "UploadRejected"))
        shell = make_engine(EngineChoice.SHELL)
        orchestrator = orchestrator_with([cloud, shell])

        summary = await orchestrator.convert_paths(media_files[:1], EngineChoice.CLOUD, mp3_options)

        assert summary.events[0].error_code == "RemoteJobFailed"
        assert summary.events[0].error_message == "Invalid API key"
        assert shell.calls == []


class TestShellMissing:
    @pytest.mark.asyncio
    async def test_two_items_without_ffmpeg(self, media_files, mp3_options, history, tmp_path):
        """Every item fails with ToolNotFound and nothing is added to history."""
        orchestrator = ConversionOrchestrator(
            {EngineChoice.SHELL: ShellTranscodeEngine(search_paths=[str(tmp_path / "missing")])},
            history_store=history,
        )
        events = []
        progress = []

        with patch("avconvert.services.engines.shell.shutil.which", return_value=None):
            summary = await orchestrator.convert_paths(
                media_files, EngineChoice.SHELL, mp3_options, on_event=events.append, on_progress=progress.append
            )

        assert [e.state for e in events] == [ItemState.FAILED, ItemState.FAILED]
        assert all(e.error_code == "ToolNotFound" for e in events)
        assert progress[-1] == 1.0
        assert summary.has_errors
        assert history.load() == []


class TestCancellation:
    """Test batch cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, make_engine, media_files, mp3_options, history):
        shell = make_engine(EngineChoice.SHELL)
        orchestrator = orchestrator_with([shell], history)
        token = CancellationToken()
        token.cancel()

        summary = await orchestrator.convert_paths(
            media_files, EngineChoice.SHELL, mp3_options, cancel_token=token
        )

        assert summary.cancelled == 2
        assert summary.progress == 1.0
        assert shell.calls == []
        assert history.load() == []

    @pytest.mark.asyncio
    async def test_cancel_during_conversion(self, make_engine, media_files, mp3_options, history):
        token = CancellationToken()

        async def cancel_batch(path):
            token.cancel()

        native = make_engine(EngineChoice.NATIVE, error=ToolNotFoundError(), on_convert=cancel_batch)
        shell = make_engine(EngineChoice.SHELL)
        orchestrator = orchestrator_with([native, shell], history, max_concurrent_items=1)

        summary = await orchestrator.convert_paths(
            media_files, EngineChoice.NATIVE, mp3_options, cancel_token=token
        )

        assert [e.state for e in summary.events] == [ItemState.CANCELLED, ItemState.CANCELLED]
        assert len(native.calls) == 1
        assert shell.calls == []
        assert history.load() == []


class TestSuccessSideEffects:
    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_item(self, make_engine, media_files, mp3_options):
        store = MagicMock()
        store.append.side_effect = OSError("disk full")
        orchestrator = orchestrator_with([make_engine(EngineChoice.SHELL)], store)

        summary = await orchestrator.convert_paths(media_files[:1], EngineChoice.SHELL, mp3_options)

        assert summary.events[0].state == ItemState.SUCCEEDED
        store.append.assert_called_once()

    @pytest.mark.asyncio
    async def test_history_written_off_event_loop(self, make_engine, media_files, mp3_options):
        loop_thread = threading.get_ident()
        append_threads = []
        store = MagicMock()
        store.append.side_effect = lambda *args: append_threads.append(threading.get_ident())
        orchestrator = orchestrator_with([make_engine(EngineChoice.SHELL)], store)

        summary = await orchestrator.convert_paths(media_files, EngineChoice.SHELL, mp3_options)

        assert summary.succeeded == 2
        assert len(append_threads) == 2
        assert loop_thread not in append_threads

    @pytest.mark.asyncio
    async def test_metadata_attributes_written(self, make_engine, media_files):
        orchestrator = ConversionOrchestrator({EngineChoice.SHELL: make_engine(EngineChoice.SHELL)})
        options = ConversionOptions(output_format="mp3", title="Song", artist="Band")

        with patch("avconvert.services.orchestrator.apply_metadata_attributes") as mock_apply:
            await orchestrator.convert_paths(media_files[:1], EngineChoice.SHELL, options)

        mock_apply.assert_called_once()
        _, kwargs = mock_apply.call_args
        assert kwargs["title"] == "Song"
        assert kwargs["artist"] == "Band"

    @pytest.mark.asyncio
    async def test_unexpected_engine_error(self, make_engine, media_files, mp3_options):
        shell = make_engine(EngineChoice.SHELL)

        async def explode(path):
            raise RuntimeError("boom")

        shell.on_convert = explode
        orchestrator = orchestrator_with([shell])

        summary = await orchestrator.convert_paths(media_files[:1], EngineChoice.SHELL, mp3_options)

        assert summary.events[0].state == ItemState.FAILED
        assert "boom" in summary.events[0].error_message


class TestFromConfig:
    def test_engines_from_config(self, tmp_path):
        config = ConverterConfig(history_path=str(tmp_path / "h.json"), max_concurrent_items=3)
        orchestrator = ConversionOrchestrator.from_config(config)

        assert set(orchestrator.engines) == {EngineChoice.NATIVE, EngineChoice.SHELL}
        assert orchestrator.max_concurrent_items == 3
        assert orchestrator.history_store.path == tmp_path / "h.json"

    def test_cloud_engine_needs_client(self, tmp_path):
        config = ConverterConfig(history_path=str(tmp_path / "h.json"))
        orchestrator = ConversionOrchestrator.from_config(config, cloud_client=MagicMock())
        assert EngineChoice.CLOUD in orchestrator.engines

    def test_item_from_path(self):
        assert ConvertibleItem(Path("x.wav")).state == ItemState.PENDING
