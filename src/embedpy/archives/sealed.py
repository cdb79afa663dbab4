"""Appended payload trailers on executable files.

A sealed file is laid out as::

    [original bytes][payload][magic][payload length, u64 little endian]

The payload is a gzip tar produced by :func:`embedpy.archives.codec.pack_directory`.
Readers locate the trailer by reading exactly ``TRAILER_LENGTH`` bytes from
the end of the file.
"""
import os
import stat
import struct
import sys
from pathlib import Path
from typing import BinaryIO, Optional, Union

from embedpy.archives.codec import pack_directory, unpack_archive
from embedpy.errors import CorruptTrailerError
from embedpy.logging import get_logger
from embedpy.types import SealInfo

logger = get_logger(__name__)

SEAL_MAGIC = b"EMBEDPYSEALv1\n"
LENGTH_FORMAT = struct.Struct("<Q")
TRAILER_LENGTH = len(SEAL_MAGIC) + LENGTH_FORMAT.size
COPY_CHUNK_SIZE = 1024 * 1024


def _read_seal_info(fh: BinaryIO, path: str) -> Optional[SealInfo]:
    size = os.fstat(fh.fileno()).st_size
    if size < TRAILER_LENGTH:
        return None

    fh.seek(size - TRAILER_LENGTH)
    trailer = fh.read(TRAILER_LENGTH)
    if trailer[:len(SEAL_MAGIC)] != SEAL_MAGIC:
        return None

    (payload_length,) = LENGTH_FORMAT.unpack(trailer[len(SEAL_MAGIC):])
    available = size - TRAILER_LENGTH
    if payload_length == 0 or payload_length > available:
        raise CorruptTrailerError(path, payload_length, size)

    return SealInfo(payload_offset=available - payload_length, payload_length=payload_length)


def detect_seal(path: Union[str, Path]) -> Optional[SealInfo]:
    """Detect a sealed payload at the end of a file.

    Returns None when the file carries no trailer.

    Raises:
        CorruptTrailerError: If the magic matches but the declared length is
            zero or larger than the file
    """
    with open(path, "rb") as fh:
        return _read_seal_info(fh, str(path))


def read_payload(path: Union[str, Path], info: SealInfo) -> bytes:
    """Read the payload bytes described by info."""
    with open(path, "rb") as fh:
        fh.seek(info.payload_offset)
        payload = fh.read(info.payload_length)
    if len(payload) != info.payload_length:
        raise CorruptTrailerError(str(path), info.payload_length, info.payload_offset + len(payload))
    return payload


def sealed_sibling_path(binary_path: Union[str, Path]) -> Path:
    """Name of the sealed copy: ``name-sealed`` or ``stem-sealed.exe``."""
    binary = Path(binary_path)
    if binary.suffix.lower() == ".exe":
        return binary.with_name(f"{binary.stem}-sealed.exe")
    return binary.with_name(f"{binary.name}-sealed")


def sealed_base_size(fh: BinaryIO, path: str) -> int:
    """Size of a file without any existing trailer and payload."""
    size = os.fstat(fh.fileno()).st_size
    info = _read_seal_info(fh, path)
    if info is None:
        return size
    return info.payload_offset


def _copy_bytes(src: BinaryIO, dst: BinaryIO, count: int) -> None:
    remaining = count
    while remaining > 0:
        chunk = src.read(min(COPY_CHUNK_SIZE, remaining))
        if not chunk:
            raise EOFError(f"Unexpected end of file with {remaining} bytes left to copy")
        dst.write(chunk)
        remaining -= len(chunk)


def seal_binary(binary_path: Union[str, Path], payload: bytes) -> Path:
    """Write a sealed copy of binary_path carrying payload.

    An existing payload on binary_path is replaced, never stacked. The input
    file is left untouched.

    Returns:
        Path of the sealed sibling file
    """
    binary = Path(binary_path)
    if binary.is_dir():
        raise IsADirectoryError(f"Binary path is a directory: {binary}")
    if not payload:
        raise ValueError("Cannot seal an empty payload")

    mode = stat.S_IMODE(binary.stat().st_mode)
    sealed_path = sealed_sibling_path(binary)

    with open(binary, "rb") as src:
        base_size = sealed_base_size(src, str(binary))
        src.seek(0)
        with open(sealed_path, "wb") as dst:
            _copy_bytes(src, dst, base_size)
            dst.write(payload)
            dst.write(SEAL_MAGIC)
            dst.write(LENGTH_FORMAT.pack(len(payload)))
    os.chmod(sealed_path, mode)

    logger.info({
        "event": "binary_sealed",
        "binary": str(binary),
        "sealed": str(sealed_path),
        "base_size": base_size,
        "payload_size": len(payload)
    })
    return sealed_path


def seal_directory_into_binary(binary_path: Union[str, Path], directory: Union[str, Path]) -> Path:
    """Pack directory and seal it into a copy of binary_path."""
    if not Path(directory).is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")
    return seal_binary(binary_path, pack_directory(directory))


def running_executable(executable: Optional[Union[str, Path]] = None) -> Path:
    """Real path of the running executable, symlinks followed.

    For a frozen host application this is the application binary itself.
    """
    return Path(os.path.realpath(executable or sys.executable))


def seal_directory_into_running_executable(
    directory: Union[str, Path], executable: Optional[Union[str, Path]] = None
) -> Path:
    """Seal directory into a sibling copy of the running executable."""
    return seal_directory_into_binary(running_executable(executable), directory)


def unseal_next_to_executable(executable: Optional[Union[str, Path]] = None) -> bool:
    """Extract the running executable's payload into its own directory.

    Returns:
        True if a payload was present and extracted, False if unsealed
    """
    exe_path = running_executable(executable)
    info = detect_seal(exe_path)
    if info is None:
        logger.debug({"event": "no_seal_found", "executable": str(exe_path)})
        return False

    payload = read_payload(exe_path, info)
    extracted = unpack_archive(payload, exe_path.parent)

    logger.info({
        "event": "payload_unsealed",
        "executable": str(exe_path),
        "destination": str(exe_path.parent),
        "entries": [str(p) for p in extracted]
    })
    return True
