"""Platform detection and runtime layout mapping."""
import platform
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from embedpy.errors import UnsupportedPlatformError
from embedpy.types import RuntimeLayout, RuntimeTarget


@dataclass(frozen=True)
class PlatformInfo:
    """Platform information."""
    os_name: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os_name == "windows"


# Architecture mappings
ARCH_MAPPINGS = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

OS_MAPPINGS = {
    "Linux": "linux",
    "Darwin": "darwin",
    "Windows": "windows",
    "Android": "android",
}

# Extracted tree shapes per OS family
RUNTIME_LAYOUTS: Dict[str, RuntimeLayout] = {
    "linux": RuntimeLayout(
        prefix="python",
        bin_subdir="bin",
        lib_subdir="lib",
        library_path_var="LD_LIBRARY_PATH",
        bundled_loader=True,
    ),
    "darwin": RuntimeLayout(
        prefix="python",
        bin_subdir="bin",
        lib_subdir="lib",
        library_path_var="DYLD_LIBRARY_PATH",
    ),
    "windows": RuntimeLayout(
        prefix="python",
        bin_subdir="",  # python.exe sits at the prefix root
        lib_subdir="Lib",
        library_path_var=None,
        script_subdirs=("Scripts",),
    ),
    "android": RuntimeLayout(
        prefix="prefix",
        bin_subdir="bin",
        lib_subdir="lib",
        library_path_var="LD_LIBRARY_PATH",
    ),
}

# Runtimes shipped per target
SUPPORTED_TARGETS: Dict[Tuple[str, str], RuntimeTarget] = {
    ("linux", "x86_64"): RuntimeTarget("linux", "x86_64", "3.10"),
    ("linux", "arm64"): RuntimeTarget("linux", "arm64", "3.15"),
    ("darwin", "arm64"): RuntimeTarget("darwin", "arm64", "3.14"),
    # Relocatable as shipped; no build prefix to rewrite
    ("windows", "x86_64"): RuntimeTarget("windows", "x86_64", "3.10", build_prefix=""),
    ("android", "arm64"): RuntimeTarget(
        "android", "arm64", "3.15", build_prefix="/data/data/com.termux/files/usr"
    ),
}

# Dynamic loaders bundled in the runtime's lib directory
LOADER_NAMES: Dict[str, Tuple[str, ...]] = {
    "x86_64": ("ld-linux-x86-64.so.2", "ld-musl-x86_64.so.1"),
    "arm64": ("ld-linux-aarch64.so.1", "ld-musl-aarch64.so.1"),
}


def _detect_system() -> str:
    if hasattr(sys, "getandroidapilevel"):
        return "Android"
    return platform.system()


def get_platform_info(system: Optional[str] = None, machine: Optional[str] = None) -> PlatformInfo:
    """Get current platform information."""
    system = system or _detect_system()
    machine = (machine or platform.machine()).lower()

    if system not in OS_MAPPINGS:
        raise UnsupportedPlatformError(system, machine, "unsupported operating system")
    if machine not in ARCH_MAPPINGS:
        raise UnsupportedPlatformError(system, machine, "unsupported architecture")

    return PlatformInfo(os_name=OS_MAPPINGS[system], arch=ARCH_MAPPINGS[machine])


def get_runtime_layout(os_name: str) -> RuntimeLayout:
    """Get the extracted tree shape for an OS family."""
    if os_name not in RUNTIME_LAYOUTS:
        raise UnsupportedPlatformError(os_name, "*", "no runtime layout")
    return RUNTIME_LAYOUTS[os_name]


def get_runtime_target(info: Optional[PlatformInfo] = None) -> RuntimeTarget:
    """Get the runtime shipped for a platform."""
    info = info or get_platform_info()
    target = SUPPORTED_TARGETS.get((info.os_name, info.arch))
    if target is None:
        raise UnsupportedPlatformError(info.os_name, info.arch, "no embedded runtime for target")
    return target


def find_bundle(bundle_dir: Union[str, Path], info: Optional[PlatformInfo] = None) -> Path:
    """Locate the ``<os>-<arch>.tar.gz`` runtime archive for a platform."""
    info = info or get_platform_info()
    target = get_runtime_target(info)
    bundle = Path(bundle_dir) / target.bundle_name
    if not bundle.is_file():
        raise UnsupportedPlatformError(
            info.os_name, info.arch, f"archive {target.bundle_name} not found in {bundle_dir}"
        )
    return bundle


def is_platform_supported() -> bool:
    """Check if current platform is supported."""
    try:
        get_runtime_target(get_platform_info())
        return True
    except UnsupportedPlatformError:
        return False
