"""Directory archives and sealed executables."""
from embedpy.archives.codec import pack_directory, unpack_archive, unpack_file
from embedpy.archives.sealed import (
    detect_seal,
    read_payload,
    seal_binary,
    seal_directory_into_binary,
    seal_directory_into_running_executable,
    unseal_next_to_executable,
)

__all__ = [
    "pack_directory",
    "unpack_archive",
    "unpack_file",
    "detect_seal",
    "read_payload",
    "seal_binary",
    "seal_directory_into_binary",
    "seal_directory_into_running_executable",
    "unseal_next_to_executable",
]
