"""
Conversion error taxonomy.

Every engine and cloud operation failure is raised as a subclass of
ConversionError. Each class carries a stable ``code`` that the
orchestrator copies into the item's terminal event.
"""

from typing import Optional


class ConversionError(Exception):
    """Base class for per-item / per-operation conversion failures."""

    code = "ConversionError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnsupportedConversionError(ConversionError):
    """Raised when an engine has no mapping for the requested output format."""

    code = "UnsupportedConversion"

    def __init__(self, format_name: str, engine: str):
        self.format_name = format_name
        self.engine = engine
        super().__init__(f"{engine} engine cannot produce '{format_name}' output")


class ToolNotFoundError(ConversionError):
    """Raised when the external transcoding executable cannot be located."""

    code = "ToolNotFound"

    def __init__(self, tool_name: str = "ffmpeg"):
        self.tool_name = tool_name
        super().__init__(
            f"{tool_name} not found. Install it (e.g. brew install {tool_name}) "
            f"or add it to PATH"
        )


class ProcessError(ConversionError):
    """Raised when the external process exits with a non-zero status."""

    code = "ProcessError"

    def __init__(self, exit_code: int, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no error output"
        super().__init__(f"Process exited with status {exit_code}: {detail}")


class ExportFailedError(ConversionError):
    """Raised when a native preset export finishes in a non-success state."""

    code = "ExportFailed"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Export failed: {detail}")


class UploadRejectedError(ConversionError):
    """Raised when the cloud service refuses an upload."""

    code = "UploadRejected"

    def __init__(self, detail: str, status: Optional[str] = None):
        self.detail = detail
        self.status = status
        super().__init__(f"Upload rejected: {detail}")


class TransportError(ConversionError):
    """Raised on network-level failures talking to the cloud service."""

    code = "TransportError"


class DecodeError(ConversionError):
    """Raised when a cloud response body does not match the expected schema."""

    code = "DecodeError"


class JobFailedError(ConversionError):
    """Raised when the remote service reports an error for a job."""

    code = "JobFailed"

    def __init__(self, job_id: str, detail: str):
        self.job_id = job_id
        self.detail = detail
        super().__init__(f"Job {job_id} failed: {detail}")


class JobTimeoutError(ConversionError):
    """Raised when a job does not reach a terminal state within the wait budget."""

    code = "Timeout"

    def __init__(self, job_id: str, waited_seconds: float):
        self.job_id = job_id
        self.waited_seconds = waited_seconds
        super().__init__(f"Job {job_id} not ready after {waited_seconds:.1f}s")


class DownloadFailedError(ConversionError):
    """Raised when the converted file cannot be downloaded."""

    code = "DownloadFailed"

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"Download failed: {detail}")


class RemoteJobFailedError(ConversionError):
    """Raised by the cloud engine when any step of the remote job fails."""

    code = "RemoteJobFailed"

    def __init__(self, detail: str, cause_code: Optional[str] = None):
        self.detail = detail
        self.cause_code = cause_code
        super().__init__(detail)


class InvalidTransitionError(Exception):
    """Raised when a state machine is asked to move to a disallowed state."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid transition {current} -> {requested}")
