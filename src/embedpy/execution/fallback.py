"""Loader fallback policies for binaries the OS refuses to start."""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from embedpy.logging import get_logger
from embedpy.runtimes.platforms import LOADER_NAMES, PlatformInfo
from embedpy.types import RuntimeLayout

logger = get_logger(__name__)

ELF_MAGIC = b"\x7fELF"
SHEBANG = b"#!"

Retry = Tuple[Path, List[str]]


class FallbackPolicy(ABC):
    """Decides how to re-launch a target after a launch failure."""

    @abstractmethod
    def retry_command(self, target: Path, args: Sequence[str]) -> Optional[Retry]:
        """Return (command, args) to retry with, or None to give up."""


def read_head(path: Path, size: int = 4) -> bytes:
    with open(path, "rb") as fh:
        return fh.read(size)


class ElfLoaderFallback(FallbackPolicy):
    """Run an ELF target through a bundled dynamic loader.

    The loader is searched next to the target, in the target's sibling
    ``lib`` directory and in any extra search directories.
    """

    def __init__(self, loader_names: Sequence[str], search_dirs: Sequence[Path] = ()):
        self.loader_names = tuple(loader_names)
        self.search_dirs = [Path(d) for d in search_dirs]

    def find_loader(self, target: Path) -> Optional[Path]:
        directories = [target.parent, target.parent.parent / "lib", *self.search_dirs]
        for directory in directories:
            for name in self.loader_names:
                candidate = directory / name
                if candidate.is_file():
                    return candidate
        return None

    def retry_command(self, target: Path, args: Sequence[str]) -> Optional[Retry]:
        try:
            head = read_head(target)
        except OSError as e:
            logger.debug({"event": "fallback_read_failed", "target": str(target), "error": str(e)})
            return None

        if head.startswith(SHEBANG) or not head.startswith(ELF_MAGIC):
            return None

        loader = self.find_loader(target)
        if loader is None:
            logger.debug({
                "event": "loader_not_found",
                "target": str(target),
                "candidates": list(self.loader_names)
            })
            return None
        return loader, [str(target), *args]


def fallbacks_for_platform(
    layout: RuntimeLayout, info: PlatformInfo, lib_dir: Path
) -> List[FallbackPolicy]:
    """Policies to register for a platform; empty without a bundled loader."""
    if not layout.bundled_loader:
        return []
    names = LOADER_NAMES.get(info.arch)
    if not names:
        return []
    return [ElfLoaderFallback(names, [lib_dir])]
