"""embedpy package."""

from embedpy.types import (
    CommandResult,
    FailureKind,
    RewriteRule,
    RunnerConfig,
    RuntimeDescriptor,
    RuntimeInstance,
    SealInfo,
)
from embedpy.archives import (
    detect_seal,
    pack_directory,
    seal_binary,
    seal_directory_into_binary,
    seal_directory_into_running_executable,
    unpack_archive,
    unseal_next_to_executable,
)
from embedpy.execution import ProcessLauncher, classify_failure
from embedpy.runtimes.instance import (
    cleanup_runtime_instance,
    create_runtime_instance,
    install_package,
    python_exec,
    rescan_executables,
    run_executable,
    runtime_session,
)
from embedpy.errors import (
    EmbedPyError,
    ArchiveFormatError,
    UnsupportedEntryError,
    PathTraversalError,
    CorruptTrailerError,
    UnsupportedPlatformError,
    InterpreterNotFoundError,
    InstallerBootstrapFailedError,
    BinNotFoundError,
    CommandFailedError,
    LaunchError,
)

__version__ = "0.1.0"

__all__ = [
    # Types
    "CommandResult",
    "FailureKind",
    "RewriteRule",
    "RunnerConfig",
    "RuntimeDescriptor",
    "RuntimeInstance",
    "SealInfo",

    # Archives and sealing
    "detect_seal",
    "pack_directory",
    "seal_binary",
    "seal_directory_into_binary",
    "seal_directory_into_running_executable",
    "unpack_archive",
    "unseal_next_to_executable",

    # Execution
    "ProcessLauncher",
    "classify_failure",

    # Runtime functions
    "cleanup_runtime_instance",
    "create_runtime_instance",
    "install_package",
    "python_exec",
    "rescan_executables",
    "run_executable",
    "runtime_session",

    # Error types
    "EmbedPyError",
    "ArchiveFormatError",
    "UnsupportedEntryError",
    "PathTraversalError",
    "CorruptTrailerError",
    "UnsupportedPlatformError",
    "InterpreterNotFoundError",
    "InstallerBootstrapFailedError",
    "BinNotFoundError",
    "CommandFailedError",
    "LaunchError",
]
