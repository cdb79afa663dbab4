"""Embedded runtime lifecycle: extract, bootstrap, run, install, clean up."""
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Sequence, Union

from fuuid import b58_fuuid

from embedpy.archives.codec import unpack_archive
from embedpy.errors import BinNotFoundError
from embedpy.execution.fallback import fallbacks_for_platform
from embedpy.execution.launcher import ProcessLauncher
from embedpy.logging import get_logger
from embedpy.runtimes.bootstrap import bootstrap_runtime, ensure_installer, runtime_environment
from embedpy.runtimes.platforms import (
    PlatformInfo,
    find_bundle,
    get_platform_info,
    get_runtime_layout,
    get_runtime_target,
)
from embedpy.types import CommandResult, RunnerConfig, RuntimeInstance

logger = get_logger(__name__)

LOCAL_ARCHIVE_SUFFIXES = (".whl", ".tar.gz", ".tgz", ".tar.bz2", ".zip")


def create_runtime_instance(
    bundle_dir: Optional[Union[str, Path]] = None,
    archive: Optional[bytes] = None,
    config: Optional[RunnerConfig] = None,
    platform_info: Optional[PlatformInfo] = None,
) -> RuntimeInstance:
    """Extract and bootstrap the runtime for the current platform.

    The runtime comes either from ``archive`` bytes or from the
    ``<os>-<arch>.tar.gz`` file in ``bundle_dir``. Every instance is extracted
    into a fresh directory; a failed bootstrap removes it again unless
    ``config.keep_extracted_files`` is set.
    """
    config = config or RunnerConfig()
    info = platform_info or get_platform_info()
    target = get_runtime_target(info)
    layout = get_runtime_layout(info.os_name)

    if archive is None:
        if bundle_dir is None:
            raise ValueError("Either bundle_dir or archive is required")
        archive = find_bundle(bundle_dir, info).read_bytes()

    instance_id = b58_fuuid()
    parent = config.get_extraction_parent()
    parent.mkdir(parents=True, exist_ok=True)
    root = Path(tempfile.mkdtemp(prefix=f"embedpy-{instance_id}-", dir=parent))

    logger.info({
        "event": "creating_runtime",
        "instance_id": instance_id,
        "target": target.bundle_name,
        "root": str(root)
    })

    try:
        unpack_archive(archive, root)
        descriptor = bootstrap_runtime(root, layout, target)
        launcher = ProcessLauncher(
            env=runtime_environment(descriptor, layout),
            fallbacks=fallbacks_for_platform(layout, info, descriptor.lib_dir),
            verbose=config.verbose,
        )
        if config.ensure_installer:
            ensure_installer(launcher, descriptor.interpreter_path)

        instance = RuntimeInstance(
            id=instance_id,
            descriptor=descriptor,
            config=config,
            launcher=launcher,
        )
        rescan_executables(instance)
    except Exception:
        if not config.keep_extracted_files:
            shutil.rmtree(root, ignore_errors=True)
        raise

    return instance


def rescan_executables(instance: RuntimeInstance) -> Dict[str, Path]:
    """Rebuild the executable catalog from the runtime's bin and script directories.

    Names found in the bin directory win over script directory entries.
    """
    catalog: Dict[str, Path] = {}
    for directory in (instance.descriptor.bin_dir, *instance.descriptor.script_dirs):
        if not directory.is_dir():
            continue
        for entry in sorted(directory.iterdir()):
            if not entry.is_dir():
                catalog.setdefault(entry.name, entry)
    instance.executables = catalog

    if instance.config.verbose:
        for name in catalog:
            logger.debug({"event": "found_executable", "name": name})
    return catalog


def python_exec(instance: RuntimeInstance, *args: str, stream: bool = False) -> CommandResult:
    """Run the runtime's interpreter with args."""
    return instance.launcher.execute(instance.python, args, stream=stream)


def run_executable(
    instance: RuntimeInstance, name: str, args: Sequence[str] = (), stream: bool = False
) -> CommandResult:
    """Run a cataloged executable by name."""
    path = instance.executables.get(name)
    if path is None:
        raise BinNotFoundError(name)
    return instance.launcher.execute(path, args, stream=stream)


def is_local_reference(spec: str) -> bool:
    """Whether a package spec names something on the local filesystem."""
    if "://" in spec:
        return False
    if spec in (".", ".."):
        return True
    if os.path.isabs(spec):
        return True
    if spec.startswith(("./", "../", ".\\", "..\\")):
        return True
    if "/" in spec or os.sep in spec:
        return True
    return spec.lower().endswith(LOCAL_ARCHIVE_SUFFIXES)


def resolve_package_spec(spec: str, cwd: Union[str, Path]) -> str:
    """Anchor local references to cwd; opaque identifiers pass through."""
    if not is_local_reference(spec):
        return spec
    return os.path.abspath(os.path.join(os.fspath(cwd), spec))


def install_package(instance: RuntimeInstance, spec: str, stream: bool = True) -> Dict[str, Path]:
    """Install a package with the runtime's pip and rescan its executables.

    Local references are resolved against the caller's working directory
    before switching into the runtime root. The original working directory
    is restored whether or not the install succeeds.

    Returns:
        The rebuilt executable catalog
    """
    original_cwd = os.getcwd()
    resolved = resolve_package_spec(spec, original_cwd)

    logger.info({
        "event": "installing_package",
        "instance_id": instance.id,
        "spec": spec,
        "resolved": resolved
    })

    os.chdir(instance.root)
    try:
        instance.launcher.execute(
            instance.python, ["-m", "pip", "install", resolved], stream=stream
        )
    finally:
        os.chdir(original_cwd)

    return rescan_executables(instance)


def cleanup_runtime_instance(instance: RuntimeInstance) -> bool:
    """Remove the extracted runtime unless the config keeps it.

    Returns:
        True if the tree was removed
    """
    if instance.config.keep_extracted_files:
        logger.info({"event": "keeping_runtime", "root": str(instance.root)})
        return False

    logger.debug({"event": "cleaning_runtime", "root": str(instance.root)})
    shutil.rmtree(instance.root, ignore_errors=True)
    return True


@contextmanager
def runtime_session(
    bundle_dir: Optional[Union[str, Path]] = None,
    archive: Optional[bytes] = None,
    config: Optional[RunnerConfig] = None,
    platform_info: Optional[PlatformInfo] = None,
) -> Iterator[RuntimeInstance]:
    """Create a runtime instance and clean it up on exit."""
    instance = create_runtime_instance(bundle_dir, archive, config, platform_info)
    try:
        yield instance
    finally:
        cleanup_runtime_instance(instance)
