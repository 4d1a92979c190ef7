"""
Error taxonomy for the compilation pipeline.

Every error carries the HTTP status it maps to so routers can raise them
directly and the app-level handler renders {"success": false, "message": ...}.
"""


class CompilationError(Exception):
    """Base class for all compilation pipeline errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidConfigError(CompilationError):
    """User supplied configuration is missing or malformed."""
    status_code = 400


class ToolchainUnavailableError(CompilationError):
    """No local build toolchain. Expected; triggers the remote fallback."""
    status_code = 500


class CompileError(CompilationError):
    """The local toolchain ran but the build failed."""
    status_code = 500


class DispatchError(CompilationError):
    """The CI platform rejected or could not be reached for a request."""
    status_code = 500


class NotFoundError(CompilationError):
    """Job or artifact does not exist."""
    status_code = 404


class NotReadyError(CompilationError):
    """Artifact requested before the job completed."""
    status_code = 404


class IntegrityError(CompilationError):
    """Run reported success but produced no matching artifact."""
    status_code = 502


class InvalidIdentifierError(CompilationError):
    """Job id or plugin filename failed validation."""
    status_code = 400


class ArtifactDownloadError(DispatchError):
    """Fetching artifact bytes from the CI platform failed."""
    status_code = 502


class CompilerUnavailableError(CompilationError):
    """No remote compiler is configured for status queries."""
    status_code = 503
