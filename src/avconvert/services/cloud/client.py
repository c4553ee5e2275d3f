"""
Cloud conversion API client.

Drives one remote job through upload -> completion -> download over
HTTPS + JSON with httpx. Authentication is a bearer API key.
"""

import logging
import tempfile
import time
import uuid
from pathlib import Path
from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from avconvert.errors import (
    DecodeError,
    DownloadFailedError,
    JobFailedError,
    TransportError,
    UploadRejectedError,
)
from avconvert.schemas import JobResponse, UploadResponse
from avconvert.services.cloud.completion import CompletionStrategy, FixedDelayCompletion

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.freeconvert.com/v1"

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class CloudJobClient:
    """
    Client for the cloud conversion service.

    Usage:
        async with CloudJobClient(api_key) as client:
            job_id = await client.upload(Path("song.wav"))
            url = await client.await_completion(job_id)
            path = await client.download(url, Path("/tmp/out"), suffix=".mp3")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        completion: Optional[CompletionStrategy] = None,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_key: Bearer token for the service
            base_url: API root, e.g. https://api.freeconvert.com/v1
            completion: Strategy used by await_completion (fixed delay by default)
            timeout: Per-request timeout in seconds
            http_client: Pre-configured httpx client (owned by the caller)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.completion = completion or FixedDelayCompletion()
        self.timeout = timeout
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "CloudJobClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def download_url_for(self, job_id: str) -> str:
        return f"{self.base_url}/process/download/{job_id}"

    async def upload(self, file_path: Path) -> str:
        """
        Upload a file and return the job identifier.

        Raises:
            UploadRejectedError: If the service refuses the upload
            TransportError: On network failure
            DecodeError: If the response does not match the upload schema
        """
        file_path = Path(file_path)
        url = f"{self.base_url}/process/import/upload"
        logger.info(f"Uploading {file_path.name} to {url}")

        try:
            with open(file_path, "rb") as fh:
                response = await self.http.post(
                    url,
                    headers=self._auth_headers(),
                    files={"file": (file_path.name, fh, "application/octet-stream")},
                )
        except httpx.HTTPError as e:
            raise TransportError(f"Upload of {file_path.name} failed: {e}") from e
        except OSError as e:
            raise UploadRejectedError(f"Cannot read {file_path}: {e}") from e

        try:
            payload = UploadResponse.model_validate_json(response.content)
        except ValidationError as e:
            if response.is_error:
                raise UploadRejectedError(
                    f"HTTP {response.status_code} {response.reason_phrase}"
                ) from e
            raise DecodeError(f"Unexpected upload response: {e.errors()[0]['msg']}") from e

        if response.is_error or not payload.accepted:
            fallback = f"HTTP {response.status_code} {response.reason_phrase}" if response.is_error else "Upload failed"
            raise UploadRejectedError(payload.error or fallback, status=payload.status)

        if not payload.id:
            raise DecodeError(f"Upload accepted ({payload.status}) but no job id was returned")

        logger.info(f"Upload accepted: job {payload.id} ({payload.status})")
        return payload.id

    async def get_job(self, job_id: str) -> JobResponse:
        """
        Fetch the job resource.

        Raises:
            TransportError: On network failure
            JobFailedError: If the service answers with an error status
            DecodeError: If the response does not match the job schema
        """
        url = f"{self.base_url}/process/{job_id}"
        try:
            response = await self.http.get(url, headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise TransportError(f"Status check for job {job_id} failed: {e}") from e

        try:
            return JobResponse.model_validate_json(response.content)
        except ValidationError as e:
            if response.is_error:
                raise JobFailedError(job_id, f"HTTP {response.status_code}") from e
            raise DecodeError(f"Unexpected job response: {e.errors()[0]['msg']}") from e

    async def await_completion(self, job_id: str) -> str:
        """
        Wait until the job is downloadable.

        Returns:
            Download URL
        """
        return await self.completion.wait(self, job_id)

    async def download(self, url: str, destination_dir: Path, suffix: str = "") -> Path:
        """
        Stream the converted file to a uniquely named file in destination_dir.

        Raises:
            DownloadFailedError: On network failure or a non-2xx status
        """
        destination_dir = Path(destination_dir)
        destination_dir.mkdir(parents=True, exist_ok=True)
        target = destination_dir / f"converted_{int(time.time())}_{uuid.uuid4().hex[:8]}{suffix}"
        logger.info(f"Downloading {url}")

        try:
            async with self.http.stream("GET", url, headers=self._auth_headers()) as response:
                if not response.is_success:
                    raise DownloadFailedError(
                        f"HTTP {response.status_code} from {url}", status_code=response.status_code
                    )
                with open(target, "wb") as fh:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        fh.write(chunk)
        except httpx.HTTPError as e:
            target.unlink(missing_ok=True)
            raise DownloadFailedError(str(e)) from e
        except OSError as e:
            target.unlink(missing_ok=True)
            raise DownloadFailedError(f"Cannot write {target}: {e}") from e

        logger.info(f"Downloaded {target.stat().st_size} bytes to {target}")
        return target

    async def verify_api_key(self) -> bool:
        """
        Check the API key by uploading a tiny probe file.

        Returns:
            True if the upload is accepted, False if it is rejected
        """
        with tempfile.TemporaryDirectory(prefix="avconvert_probe_") as tmp:
            probe = Path(tmp) / "test.txt"
            probe.write_bytes(b"test")
            try:
                await self.upload(probe)
            except UploadRejectedError as e:
                logger.warning(f"API key check failed: {e.detail}")
                return False
        return True
