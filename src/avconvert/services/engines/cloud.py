"""
Cloud conversion engine.

Wraps CloudJobClient: upload, wait for the job, download to a scratch
directory and move the result into place. Failures of any step surface as
RemoteJobFailedError carrying the underlying message and error code.
"""

import logging
import shutil
import tempfile
from collections import OrderedDict
from pathlib import Path
from typing import Optional

from avconvert.errors import ConversionError, RemoteJobFailedError, UnsupportedConversionError
from avconvert.models.cloud_job import CloudJob, CloudJobState
from avconvert.models.conversion import ConversionOptions, EngineChoice
from avconvert.services import format_catalog
from avconvert.services.cloud.client import CloudJobClient
from avconvert.services.engines.base import ConversionEngine, ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_MAX_TRACKED_JOBS = 100


class CloudJobEngine(ConversionEngine):
    """Remote conversion through the cloud API."""

    choice = EngineChoice.CLOUD

    def __init__(
        self,
        client: CloudJobClient,
        work_dir: Optional[Path] = None,
        max_tracked_jobs: int = DEFAULT_MAX_TRACKED_JOBS,
    ):
        """
        Args:
            client: Configured cloud API client
            work_dir: Parent for scratch download directories (system temp by default)
            max_tracked_jobs: Number of recent jobs kept in ``jobs``
        """
        self.client = client
        self.work_dir = work_dir
        self.max_tracked_jobs = max(1, max_tracked_jobs)
        # Latest job per source path, oldest evicted first
        self.jobs: "OrderedDict[Path, CloudJob]" = OrderedDict()

    def _track(self, job: CloudJob) -> None:
        self.jobs.pop(job.source_path, None)
        self.jobs[job.source_path] = job
        while len(self.jobs) > self.max_tracked_jobs:
            self.jobs.popitem(last=False)

    async def convert(
        self,
        input_path: Path,
        output_path: Path,
        options: ConversionOptions,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        input_path = Path(input_path)
        output_path = Path(output_path)

        if not format_catalog.supports(self.choice, options.output_format):
            raise UnsupportedConversionError(options.output_format, self.name)

        def report(fraction: float) -> None:
            if progress_callback:
                progress_callback(fraction)

        job = CloudJob(source_path=input_path)
        self._track(job)

        try:
            job.advance(CloudJobState.UPLOADING)
            job_id = await self.client.upload(input_path)
            job.mark_uploaded(job_id)
            report(0.25)

            job.advance(CloudJobState.CONVERTING)
            report(0.5)
            download_url = await self.client.await_completion(job_id)
            job.mark_ready(download_url)
            report(0.8)

            with tempfile.TemporaryDirectory(prefix="avconvert_cloud_", dir=self.work_dir) as tmp:
                downloaded = await self.client.download(
                    download_url, Path(tmp), suffix=output_path.suffix
                )
                output_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(downloaded), str(output_path))
            job.advance(CloudJobState.DOWNLOADED)
        except ConversionError as e:
            job.fail(e.message)
            logger.warning(f"Cloud job for {input_path.name} failed ({e.code}): {e.message}")
            raise RemoteJobFailedError(e.message, cause_code=e.code) from e
        except OSError as e:
            job.fail(str(e))
            raise RemoteJobFailedError(
                f"Could not store downloaded file: {e}", cause_code="DownloadFailed"
            ) from e

        report(1.0)
        logger.info(f"Cloud conversion complete: {output_path}")
        return output_path
