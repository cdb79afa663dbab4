"""Core type definitions"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

import appdirs

if TYPE_CHECKING:
    from embedpy.execution.launcher import ProcessLauncher

FailureKind = Enum('FailureKind', ['EXIT', 'LAUNCH'])

TRUTHY = {"1", "true", "yes", "on"}

# Bytes that continue a path component on either side of a match
PATH_TOKEN_START = rb"(?<![A-Za-z0-9_.\-/])"
PATH_TOKEN_END = rb"(?![A-Za-z0-9_.\-])"


@dataclass(frozen=True)
class SealInfo:
    """Location of a sealed payload inside a file"""
    payload_offset: int
    payload_length: int


@dataclass(frozen=True)
class RuntimeLayout:
    """Shape of an extracted runtime tree for one OS family"""
    prefix: str
    bin_subdir: str
    lib_subdir: str
    library_path_var: Optional[str]
    bundled_loader: bool = False
    # Where pip puts console scripts when it is not the bin directory
    script_subdirs: Tuple[str, ...] = ()

    def prefix_path(self, root: Path) -> Path:
        return root / self.prefix

    def bin_path(self, root: Path) -> Path:
        return self.prefix_path(root) / self.bin_subdir

    def lib_path(self, root: Path) -> Path:
        return self.prefix_path(root) / self.lib_subdir

    def script_paths(self, root: Path) -> Tuple[Path, ...]:
        return tuple(self.prefix_path(root) / d for d in self.script_subdirs)


@dataclass(frozen=True)
class RuntimeTarget:
    """A supported OS/architecture pair and the runtime shipped for it"""
    os_name: str
    arch: str
    version: str
    build_prefix: str = "/install"

    @property
    def bundle_name(self) -> str:
        return f"{self.os_name}-{self.arch}.tar.gz"


@dataclass(frozen=True)
class RewriteRule:
    """Replace a build-time absolute path with its extracted location

    Only whole path tokens match: ``/install`` rewrites ``/install/bin`` and a
    trailing ``/install`` but not ``/installer`` or ``/docs/install``.
    """
    search_path: str
    replacement_path: str

    def apply(self, content: bytes) -> bytes:
        search = self.search_path.rstrip("/")
        if not search:
            return content
        pattern = PATH_TOKEN_START + re.escape(os.fsencode(search)) + PATH_TOKEN_END
        replacement = os.fsencode(self.replacement_path.rstrip("/"))
        return re.sub(pattern, lambda _: replacement, content)


@dataclass(frozen=True)
class RuntimeDescriptor:
    """Resolved locations inside an extracted runtime"""
    root_path: Path
    bin_dir: Path
    lib_dir: Path
    interpreter_path: Path
    version_tag: str
    script_dirs: Tuple[Path, ...] = ()


@dataclass(frozen=True)
class RunnerConfig:
    """Runner behaviour toggles"""
    verbose: bool = False
    keep_extracted_files: bool = False
    extraction_parent: Optional[Path] = None
    ensure_installer: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "RunnerConfig":
        """Build a config from EMBEDPY_VERBOSE / EMBEDPY_KEEP_EXTRACTED."""
        environ = os.environ if environ is None else environ
        values = {
            "verbose": environ.get("EMBEDPY_VERBOSE", "").lower() in TRUTHY,
            "keep_extracted_files": environ.get("EMBEDPY_KEEP_EXTRACTED", "").lower() in TRUTHY,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def get_extraction_parent(self) -> Path:
        if self.extraction_parent is not None:
            return Path(self.extraction_parent)
        return Path(appdirs.user_cache_dir("embedpy")) / "runtimes"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a completed subprocess"""
    command: str
    args: List[str]
    returncode: int
    output: bytes = b""


@dataclass
class RuntimeInstance:
    """An extracted, bootstrapped runtime and the executables it provides"""
    id: str
    descriptor: RuntimeDescriptor
    config: RunnerConfig
    launcher: "ProcessLauncher"
    executables: Dict[str, Path] = field(default_factory=dict)

    @property
    def python(self) -> Path:
        return self.descriptor.interpreter_path

    @property
    def root(self) -> Path:
        return self.descriptor.root_path
