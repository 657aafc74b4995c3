"""
Typed failures raised by pipeline phases.

Each error knows which phase it belongs to, so the orchestrator can build the
human-readable cause ("download error: ...") without inspecting the type.
"""


class PipelineError(Exception):
    phase = "pipeline"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def describe(self) -> str:
        return f"{self.phase} error: {self.message}"


class JobValidationError(PipelineError):
    """Malformed or missing archive URL / job id. Raised before any phase starts."""

    phase = "validation"


class DownloadError(PipelineError):
    phase = "download"


class TransformError(PipelineError):
    """Renderer exited non-zero, was killed, or could not be spawned at all."""

    phase = "process"

    def __init__(self, message: str, *, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class UploadError(PipelineError):
    phase = "upload"


class NotifyError(PipelineError):
    """Never fatal: the dispatcher logs these and carries on."""

    phase = "notify"


class LaunchError(PipelineError):
    """The job could not be handed to a worker or task runner."""

    phase = "launch"
