"""Turn an extracted runtime tree into a runnable interpreter."""
import os
import stat
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from embedpy.errors import (
    CommandFailedError,
    InstallerBootstrapFailedError,
    InterpreterNotFoundError,
)
from embedpy.logging import get_logger
from embedpy.types import RewriteRule, RuntimeDescriptor, RuntimeLayout, RuntimeTarget

logger = get_logger(__name__)

EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
BINARY_SNIFF_SIZE = 8192


def _iter_regular_files(directory: Path, recursive: bool = True) -> List[Path]:
    if not directory.is_dir():
        return []
    entries = directory.rglob("*") if recursive else directory.iterdir()
    return sorted(p for p in entries if p.is_file() and not p.is_symlink())


def make_executable(directory: Path, recursive: bool = True) -> List[Path]:
    """Add execute bits to every regular file below directory.

    Files whose mode cannot be changed are logged and skipped.
    """
    changed = []
    for path in _iter_regular_files(directory, recursive):
        try:
            mode = stat.S_IMODE(path.stat().st_mode)
            path.chmod(mode | EXECUTE_BITS)
        except OSError as e:
            logger.warning({
                "event": "chmod_failed",
                "path": str(path),
                "error": str(e)
            })
            continue
        changed.append(path)

    logger.debug({
        "event": "permissions_repaired",
        "directory": str(directory),
        "files": len(changed)
    })
    return changed


def is_binary_content(content: bytes) -> bool:
    return b"\x00" in content[:BINARY_SNIFF_SIZE]


def apply_rewrite_rules(
    directory: Path, rules: Sequence[RewriteRule], recursive: bool = True
) -> List[Path]:
    """Rewrite build-time paths in the text files below directory.

    Files containing NUL bytes are treated as compiled binaries and left
    untouched. Files that cannot be read or written are logged and skipped.

    Returns:
        Files whose content changed
    """
    rewritten = []
    for path in _iter_regular_files(directory, recursive):
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.warning({
                "event": "rewrite_read_failed",
                "path": str(path),
                "error": str(e)
            })
            continue

        if is_binary_content(content):
            continue

        updated = content
        for rule in rules:
            updated = rule.apply(updated)
        if updated == content:
            continue

        try:
            mode = stat.S_IMODE(path.stat().st_mode)
            path.write_bytes(updated)
            path.chmod(mode)
        except OSError as e:
            logger.warning({
                "event": "rewrite_write_failed",
                "path": str(path),
                "error": str(e)
            })
            continue
        rewritten.append(path)

    logger.debug({
        "event": "paths_rewritten",
        "directory": str(directory),
        "rules": [(r.search_path, r.replacement_path) for r in rules],
        "files": [p.name for p in rewritten]
    })
    return rewritten


def interpreter_candidates(version: str, windows: bool = False) -> List[str]:
    """Interpreter names to try, version-qualified first."""
    major = version.split(".")[0]
    names = [f"python{version}", f"python{major}", "python3", "python"]
    if windows:
        names = [f"{name}.exe" for name in names]
    return list(dict.fromkeys(names))


def resolve_interpreter(bin_dir: Path, version: str, windows: bool = False) -> Path:
    """Return the first existing, non-directory interpreter candidate."""
    candidates = interpreter_candidates(version, windows)
    for name in candidates:
        path = bin_dir / name
        if path.exists() and not path.is_dir():
            return path
    raise InterpreterNotFoundError(str(bin_dir), candidates)


def wire_library_path(
    env: Mapping[str, str], lib_dir: Path, var: Optional[str]
) -> Dict[str, str]:
    """Prepend lib_dir to the library search variable unless already there."""
    env = dict(env)
    if not var:
        return env

    entries = [e for e in env.get(var, "").split(os.pathsep) if e]
    if str(lib_dir) in entries:
        return env

    env[var] = os.pathsep.join([str(lib_dir), *entries])
    logger.debug({"event": "library_path_wired", "var": var, "value": env[var]})
    return env


def runtime_environment(
    descriptor: RuntimeDescriptor,
    layout: RuntimeLayout,
    base_env: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """Environment for processes launched against the runtime."""
    env = dict(os.environ if base_env is None else base_env)
    return wire_library_path(env, descriptor.lib_dir, layout.library_path_var)


def _installer_available(launcher, interpreter: Path) -> bool:
    try:
        launcher.execute(interpreter, ["-m", "pip", "--version"])
    except CommandFailedError:
        return False
    return True


def ensure_installer(launcher, interpreter: Path) -> None:
    """Make sure the interpreter can run ``-m pip``, bootstrapping it if not.

    Raises:
        InstallerBootstrapFailedError: If pip is still missing afterwards
    """
    if _installer_available(launcher, interpreter):
        return

    logger.info({"event": "bootstrapping_installer", "interpreter": str(interpreter)})
    try:
        launcher.execute(interpreter, ["-m", "ensurepip", "--upgrade"])
    except CommandFailedError as e:
        raise InstallerBootstrapFailedError(
            str(interpreter), e.output.decode(errors="replace")
        ) from e

    if not _installer_available(launcher, interpreter):
        raise InstallerBootstrapFailedError(str(interpreter))


def bootstrap_runtime(
    root: Path,
    layout: RuntimeLayout,
    target: RuntimeTarget,
    extra_rules: Iterable[RewriteRule] = ()
) -> RuntimeDescriptor:
    """Prepare an extracted runtime tree rooted at root.

    Repairs execute bits, rewrites the target's build prefix to the
    extracted prefix and resolves the interpreter. Only the files directly
    inside the bin and script directories are touched; on layouts whose bin
    directory is the prefix itself, the standard library is left alone.
    """
    prefix = layout.prefix_path(root)
    bin_dir = layout.bin_path(root)
    lib_dir = layout.lib_path(root)
    script_dirs = layout.script_paths(root)

    rules = [RewriteRule(target.build_prefix, str(prefix)), *extra_rules]
    for directory in (bin_dir, *script_dirs):
        make_executable(directory, recursive=False)
        apply_rewrite_rules(directory, rules, recursive=False)

    interpreter = resolve_interpreter(bin_dir, target.version, windows=target.os_name == "windows")

    descriptor = RuntimeDescriptor(
        root_path=root,
        bin_dir=bin_dir,
        lib_dir=lib_dir,
        interpreter_path=interpreter,
        version_tag=target.version,
        script_dirs=script_dirs,
    )
    logger.info({
        "event": "runtime_bootstrapped",
        "root": str(root),
        "interpreter": str(interpreter),
        "version": target.version
    })
    return descriptor
