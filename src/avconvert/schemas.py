"""
Pydantic schemas for the cloud conversion API.

Response bodies of the upload and job status endpoints.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadForm(BaseModel):
    """Form-based upload target returned by some upload variants"""

    url: str
    parameters: Dict[str, str] = Field(default_factory=dict)


class UploadResult(BaseModel):
    """Upload result payload"""

    form: UploadForm


class UploadResponse(BaseModel):
    """Response of POST /process/import/upload"""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    job: Optional[str] = None
    operation: Optional[str] = None
    status: str
    result: Optional[UploadResult] = None
    error: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status in ("created", "processing")


class JobResult(BaseModel):
    """Job result payload"""

    url: Optional[str] = None


class JobResponse(BaseModel):
    """Response of GET /process/<job id>"""

    model_config = ConfigDict(extra="ignore")

    id: str
    job: Optional[str] = None
    operation: Optional[str] = None
    status: str
    progress: Optional[int] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
