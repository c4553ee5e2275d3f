"""
Unit tests for the cloud conversion engine.
"""

from pathlib import Path

import httpx
import pytest

from avconvert.errors import RemoteJobFailedError, UnsupportedConversionError
from avconvert.models.cloud_job import CloudJobState
from avconvert.models.conversion import ConversionOptions
from avconvert.services.cloud import CloudJobClient, FixedDelayCompletion
from avconvert.services.engines.cloud import CloudJobEngine


async def no_sleep(delay: float) -> None:
    return None


def make_engine(handler, tmp_path: Path) -> CloudJobEngine:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = CloudJobClient(
        "key", base_url="https://api.test/v1", completion=FixedDelayCompletion(sleep=no_sleep), http_client=http
    )
    return CloudJobEngine(client, work_dir=tmp_path)


@pytest.fixture
def source(tmp_path) -> Path:
    path = tmp_path / "talk.m4a"
    path.write_bytes(b"\x00" * 16)
    return path


class TestCloudJobEngine:
    @pytest.mark.asyncio
    async def test_successful_job(self, source, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json={"id": "job-1", "status": "created"})
            assert request.url.path == "/v1/process/download/job-1"
            return httpx.Response(200, content=b"mp3 bytes")

        engine = make_engine(handler, tmp_path)
        progress = []
        output = tmp_path / "out" / "talk.mp3"

        result = await engine.convert(source, output, ConversionOptions(output_format="mp3"), progress.append)

        assert result == output
        assert output.read_bytes() == b"mp3 bytes"
        assert progress == [0.25, 0.5, 0.8, 1.0]
        assert engine.jobs[source].state == CloudJobState.DOWNLOADED
        assert engine.jobs[source].job_id == "job-1"

    @pytest.mark.asyncio
    async def test_upload_rejected_becomes_remote_failure(self, source, tmp_path):
        engine = make_engine(
            lambda request: httpx.Response(200, json={"id": "x", "status": "error", "error": "Invalid API key"}),
            tmp_path,
        )

        with pytest.raises(RemoteJobFailedError) as exc_info:
            await engine.convert(source, tmp_path / "talk.mp3", ConversionOptions(output_format="mp3"))

        assert exc_info.value.code == "RemoteJobFailed"
        assert exc_info.value.cause_code == "UploadRejected"
        assert "Invalid API key" in exc_info.value.message
        assert engine.jobs[source].state == CloudJobState.FAILED
        assert not (tmp_path / "talk.mp3").exists()

    @pytest.mark.asyncio
    async def test_only_recent_jobs_are_kept(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json={"id": "job", "status": "created"})
            return httpx.Response(200, content=b"mp3 bytes")

        engine = make_engine(handler, tmp_path)
        engine.max_tracked_jobs = 2
        for name in ("a.m4a", "b.m4a", "c.m4a", "b.m4a"):
            path = tmp_path / name
            path.write_bytes(b"\x00")
            await engine.convert(path, tmp_path / "out" / f"{path.stem}.mp3", ConversionOptions(output_format="mp3"))

        assert list(engine.jobs) == [tmp_path / "c.m4a", tmp_path / "b.m4a"]
        assert all(job.state == CloudJobState.DOWNLOADED for job in engine.jobs.values())

    @pytest.mark.asyncio
    async def test_download_failure(self, source, tmp_path):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"id": "job-2", "status": "processing"})
            return httpx.Response(404)

        engine = make_engine(handler, tmp_path)

        with pytest.raises(RemoteJobFailedError) as exc_info:
            await engine.convert(source, tmp_path / "talk.mp3", ConversionOptions(output_format="mp3"))

        assert exc_info.value.cause_code == "DownloadFailed"

    @pytest.mark.asyncio
    async def test_video_output_not_offered(self, source, tmp_path):
        engine = make_engine(lambda request: pytest.fail("no request expected"), tmp_path)
        with pytest.raises(UnsupportedConversionError):
            await engine.convert(source, tmp_path / "talk.mp4", ConversionOptions(output_format="mp4"))
