"""Error handling for embedpy."""
from typing import Any, Dict, List, Optional, Sequence

from embedpy.logging import get_logger

logger = get_logger(__name__)

INTERNAL_ERROR = "internal_error"
ARCHIVE_ERROR = "archive_error"
SEAL_ERROR = "seal_error"
PLATFORM_ERROR = "platform_error"
RUNTIME_ERROR = "runtime_error"
EXECUTION_ERROR = "execution_error"


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    logger=None
) -> None:
    """Log an error with context."""
    logger = logger or get_logger(__name__)

    error_info = {
        "event": "embedpy_error",
        "error_type": error.__class__.__name__,
        "error_message": str(error)
    }
    if context:
        error_info["context"] = context
    if isinstance(error, EmbedPyError):
        error_info["code"] = error.code
        error_info["details"] = error.details

    logger.error(error_info)


class EmbedPyError(Exception):
    """Base error class for embedpy."""
    def __init__(
        self,
        message: str,
        code: str = INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ArchiveFormatError(EmbedPyError):
    """Malformed archive header or undecompressible payload."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=ARCHIVE_ERROR, details=details)


class UnsupportedEntryError(EmbedPyError):
    """Archive entry that is neither a directory nor a regular file."""
    def __init__(self, path: str, kind: str):
        super().__init__(
            f"Unsupported {kind} entry: {path}",
            code=ARCHIVE_ERROR,
            details={"path": path, "kind": kind}
        )


class PathTraversalError(EmbedPyError):
    """Archive entry that would land outside the extraction root."""
    def __init__(self, name: str, dest_root: str):
        super().__init__(
            f"Invalid path in archive: {name!r}",
            code=ARCHIVE_ERROR,
            details={"name": name, "dest_root": dest_root}
        )


class CorruptTrailerError(EmbedPyError):
    """Seal magic matched but the declared payload length is impossible."""
    def __init__(self, path: str, payload_length: int, file_size: int):
        super().__init__(
            f"Invalid sealed payload size ({payload_length}) for file size ({file_size})",
            code=SEAL_ERROR,
            details={
                "path": path,
                "payload_length": payload_length,
                "file_size": file_size
            }
        )


class UnsupportedPlatformError(EmbedPyError):
    """No embedded runtime exists for this OS/architecture."""
    def __init__(self, os_name: str, arch: str, reason: str = "unsupported platform"):
        super().__init__(
            f"No embedded runtime for {os_name}-{arch}: {reason}",
            code=PLATFORM_ERROR,
            details={"os": os_name, "arch": arch}
        )


class InterpreterNotFoundError(EmbedPyError):
    """None of the interpreter candidates exist in the bin directory."""
    def __init__(self, bin_dir: str, candidates: Sequence[str]):
        super().__init__(
            f"No interpreter found in {bin_dir}",
            code=RUNTIME_ERROR,
            details={"bin_dir": bin_dir, "candidates": list(candidates)}
        )


class InstallerBootstrapFailedError(EmbedPyError):
    """Package installer still unavailable after bootstrapping it."""
    def __init__(self, interpreter: str, output: str = ""):
        super().__init__(
            f"Package installer unavailable for {interpreter}",
            code=RUNTIME_ERROR,
            details={"interpreter": interpreter, "output": output}
        )


class BinNotFoundError(EmbedPyError):
    """Binary not found error."""
    def __init__(self, binary_name: str):
        super().__init__(
            f"Binary {binary_name} not found",
            code=RUNTIME_ERROR,
            details={"binary_name": binary_name}
        )


class CommandFailedError(EmbedPyError):
    """Process started and exited with a nonzero status."""
    def __init__(self, command: str, args: List[str], returncode: int, output: bytes = b""):
        super().__init__(
            f"Command {command} exited with code {returncode}",
            code=EXECUTION_ERROR,
            details={"command": command, "args": args, "returncode": returncode}
        )
        self.command = command
        self.args_list = args
        self.returncode = returncode
        self.output = output


class LaunchError(EmbedPyError):
    """Process could not be started at all."""
    def __init__(self, command: str, reason: str):
        super().__init__(
            f"Failed to launch {command}: {reason}",
            code=EXECUTION_ERROR,
            details={"command": command, "reason": reason}
        )
        self.command = command
