"""Gzip tar packing and contained extraction of directory trees."""
import gzip
import io
import os
import posixpath
import shutil
import stat
import tarfile
import zlib
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from embedpy.errors import ArchiveFormatError, PathTraversalError, UnsupportedEntryError
from embedpy.logging import get_logger

logger = get_logger(__name__)

DIR_MODE = 0o755
PERMISSION_BITS = 0o777

READ_ERRORS = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile)

ENTRY_KINDS = {
    tarfile.SYMTYPE: "symlink",
    tarfile.LNKTYPE: "hardlink",
    tarfile.CHRTYPE: "character device",
    tarfile.BLKTYPE: "block device",
    tarfile.FIFOTYPE: "fifo",
}


def _walk(path: Path) -> Iterator[Path]:
    """Yield path and everything below it, parents first, in sorted order."""
    yield path
    if path.is_dir() and not path.is_symlink():
        for child in sorted(path.iterdir()):
            yield from _walk(child)


def _entry_kind(mode: int) -> str:
    if stat.S_ISLNK(mode):
        return "symlink"
    if stat.S_ISFIFO(mode):
        return "fifo"
    if stat.S_ISSOCK(mode):
        return "socket"
    if stat.S_ISCHR(mode):
        return "character device"
    if stat.S_ISBLK(mode):
        return "block device"
    return "special file"


def pack_directory(directory: Union[str, Path]) -> bytes:
    """Pack a directory tree into gzip tar bytes.

    Every entry is prefixed with the directory's base name and uses forward
    slashes. Only directories and regular files are accepted.

    Raises:
        NotADirectoryError: If directory is not a directory
        UnsupportedEntryError: On symlinks, devices, fifos and sockets
    """
    root = Path(os.path.abspath(directory))
    if not root.is_dir() or root.is_symlink():
        raise NotADirectoryError(f"Not a directory: {root}")

    buf = io.BytesIO()
    count = 0
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for path in _walk(root):
            st = path.lstat()
            rel = path.relative_to(root).as_posix()
            name = root.name if rel == "." else f"{root.name}/{rel}"

            if stat.S_ISDIR(st.st_mode):
                info = tarfile.TarInfo(name + "/")
                info.type = tarfile.DIRTYPE
                info.mode = stat.S_IMODE(st.st_mode) & PERMISSION_BITS
                info.mtime = int(st.st_mtime)
                archive.addfile(info)
            elif stat.S_ISREG(st.st_mode):
                info = tarfile.TarInfo(name)
                info.type = tarfile.REGTYPE
                info.mode = stat.S_IMODE(st.st_mode) & PERMISSION_BITS
                info.mtime = int(st.st_mtime)
                info.size = st.st_size
                with open(path, "rb") as fh:
                    archive.addfile(info, fh)
            else:
                raise UnsupportedEntryError(str(path), _entry_kind(st.st_mode))
            count += 1

    payload = buf.getvalue()
    logger.debug({
        "event": "directory_packed",
        "directory": str(root),
        "entries": count,
        "size": len(payload)
    })
    return payload


def resolve_entry_path(dest_root: Path, name: str) -> Optional[Path]:
    """Map an archive entry name to a path inside dest_root.

    Returns None for entries naming the root itself.

    Raises:
        PathTraversalError: If the cleaned name is absolute or escapes dest_root
    """
    clean = posixpath.normpath(name.replace("\\", "/")) if name else "."
    if clean == ".":
        return None
    if (
        clean.startswith("/")
        or clean == ".."
        or clean.startswith("../")
        or os.path.isabs(clean)
        or os.path.splitdrive(clean)[0]
    ):
        raise PathTraversalError(name, str(dest_root))

    target = dest_root.joinpath(*clean.split("/"))
    if os.path.commonpath([str(dest_root), str(target)]) != str(dest_root):
        raise PathTraversalError(name, str(dest_root))
    return target


def _plan_extraction(
    members: List[tarfile.TarInfo], dest_root: Path
) -> List[Tuple[tarfile.TarInfo, Path]]:
    plan = []
    for member in members:
        target = resolve_entry_path(dest_root, member.name)
        if not (member.isdir() or member.isreg()):
            raise UnsupportedEntryError(
                member.name, ENTRY_KINDS.get(member.type, f"type {member.type!r}")
            )
        if target is not None:
            plan.append((member, target))
    return plan


def unpack_archive(data: bytes, dest_root: Union[str, Path]) -> List[Path]:
    """Unpack gzip tar bytes into dest_root.

    Every entry is validated before anything is written, so a rejected
    archive leaves dest_root untouched.

    Returns:
        Top-level paths created under dest_root

    Raises:
        ArchiveFormatError: If the stream cannot be decompressed or parsed
        PathTraversalError: If an entry would land outside dest_root
        UnsupportedEntryError: If an entry is not a directory or regular file
    """
    dest = Path(os.path.abspath(dest_root))

    try:
        archive = tarfile.open(fileobj=io.BytesIO(data), mode="r:gz")
    except READ_ERRORS as e:
        raise ArchiveFormatError(f"Failed to open archive: {e}") from e

    with archive:
        try:
            members = archive.getmembers()
        except READ_ERRORS as e:
            raise ArchiveFormatError(f"Failed to read tar header: {e}") from e

        plan = _plan_extraction(members, dest)
        dest.mkdir(parents=True, exist_ok=True)

        top_level = []
        for member, target in plan:
            if member.isdir():
                target.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
                os.chmod(target, DIR_MODE)
            else:
                target.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
                try:
                    source = archive.extractfile(member)
                    with source, open(target, "wb") as fh:
                        shutil.copyfileobj(source, fh)
                except READ_ERRORS as e:
                    raise ArchiveFormatError(
                        f"Failed to read content of {member.name}: {e}"
                    ) from e
                os.chmod(target, member.mode & PERMISSION_BITS)

            top = dest / target.relative_to(dest).parts[0]
            if top not in top_level:
                top_level.append(top)

    logger.debug({
        "event": "archive_unpacked",
        "dest_root": str(dest),
        "entries": len(plan)
    })
    return top_level


def unpack_file(archive_path: Union[str, Path], dest_root: Union[str, Path]) -> List[Path]:
    """Unpack a gzip tar file from disk into dest_root."""
    return unpack_archive(Path(archive_path).read_bytes(), dest_root)
