"""Tests for directory packing and contained extraction."""
import gzip
import io
import os
import stat
import tarfile

import pytest

from embedpy.archives.codec import (
    DIR_MODE,
    pack_directory,
    resolve_entry_path,
    unpack_archive,
    unpack_file,
)
from embedpy.errors import ArchiveFormatError, PathTraversalError, UnsupportedEntryError

from conftest import make_tar_gz, posix_only


def _names(payload: bytes):
    with tarfile.open(fileobj=io.BytesIO(payload), mode="r:gz") as archive:
        return archive.getnames()


@posix_only
def test_scenario_file_and_empty_directory(sample_tree, tmp_path):
    """root/a/b.txt and the empty root/c survive a pack/unpack cycle."""
    dest = tmp_path / "dest"
    created = unpack_archive(pack_directory(sample_tree), dest)

    assert created == [dest / "root"]
    b_txt = dest / "root" / "a" / "b.txt"
    assert b_txt.read_text() == "hi"
    assert stat.S_IMODE(b_txt.stat().st_mode) == 0o644
    assert (dest / "root" / "c").is_dir()
    assert list((dest / "root" / "c").iterdir()) == []
    assert stat.S_IMODE((dest / "root" / "c").stat().st_mode) == DIR_MODE


def test_pack_prefixes_entries_with_base_name(sample_tree):
    """Every entry starts with the packed directory's name."""
    names = _names(pack_directory(sample_tree))
    assert names == ["root", "root/a", "root/a/b.txt", "root/c"]


def test_pack_marks_directories_with_trailing_slash(sample_tree):
    """Directory headers are written with a trailing separator."""
    raw = gzip.decompress(pack_directory(sample_tree))
    assert b"root/a/\x00" in raw
    assert b"root/c/\x00" in raw


@posix_only
def test_round_trip_preserves_modes_and_content(tmp_path):
    """Relative paths, contents and permission bits round trip."""
    root = tmp_path / "tree"
    (root / "bin").mkdir(parents=True)
    (root / "lib" / "deep").mkdir(parents=True)
    files = {
        "bin/tool": (b"#!/bin/sh\necho hi\n", 0o755),
        "lib/deep/data.bin": (bytes(range(256)) * 4, 0o600),
        "README": (b"", 0o444),
    }
    for rel, (content, mode) in files.items():
        path = root / rel
        path.write_bytes(content)
        path.chmod(mode)

    dest = tmp_path / "out"
    unpack_archive(pack_directory(root), dest)

    for rel, (content, mode) in files.items():
        path = dest / "tree" / rel
        assert path.read_bytes() == content
        assert stat.S_IMODE(path.stat().st_mode) == mode


@posix_only
def test_pack_rejects_symlinks(sample_tree):
    """Symbolic links are not representable."""
    (sample_tree / "link").symlink_to(sample_tree / "a" / "b.txt")
    with pytest.raises(UnsupportedEntryError, match="symlink"):
        pack_directory(sample_tree)


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires mkfifo")
def test_pack_rejects_fifos(sample_tree):
    """Special files are rejected."""
    os.mkfifo(sample_tree / "pipe")
    with pytest.raises(UnsupportedEntryError, match="fifo"):
        pack_directory(sample_tree)


def test_pack_requires_directory(tmp_path):
    """Packing a file is an error."""
    path = tmp_path / "file"
    path.write_text("x")
    with pytest.raises(NotADirectoryError):
        pack_directory(path)


@pytest.mark.parametrize("name", [
    "../../etc/passwd",
    "/etc/passwd",
    "..",
    "root/../../escape.txt",
])
def test_unpack_rejects_traversal(tmp_path, name):
    """Entries escaping the destination fail and write nothing."""
    dest = tmp_path / "dest"
    payload = make_tar_gz([
        ("root/", tarfile.DIRTYPE, b""),
        ("root/ok.txt", tarfile.REGTYPE, b"fine"),
        (name, tarfile.REGTYPE, b"owned"),
    ])

    with pytest.raises(PathTraversalError):
        unpack_archive(payload, dest)

    assert not dest.exists()
    assert not (tmp_path / "escape.txt").exists()
    assert not (tmp_path.parent / "escape.txt").exists()


def test_unpack_allows_inner_dotdot(tmp_path):
    """Names that normalize inside the destination are fine."""
    payload = make_tar_gz([("root/a/../b.txt", tarfile.REGTYPE, b"x")])
    unpack_archive(payload, tmp_path)
    assert (tmp_path / "root" / "b.txt").read_bytes() == b"x"


@pytest.mark.parametrize("entry_type,kind", [
    (tarfile.SYMTYPE, "symlink"),
    (tarfile.LNKTYPE, "hardlink"),
    (tarfile.FIFOTYPE, "fifo"),
    (tarfile.CHRTYPE, "character device"),
])
def test_unpack_rejects_unsupported_entries(tmp_path, entry_type, kind):
    """Only directories and regular files are extracted."""
    payload = make_tar_gz([
        ("root/ok.txt", tarfile.REGTYPE, b"fine"),
        ("root/special", entry_type, b"/etc/passwd"),
    ])
    with pytest.raises(UnsupportedEntryError, match=kind):
        unpack_archive(payload, tmp_path / "dest")
    assert not (tmp_path / "dest").exists()


def test_unpack_rejects_garbage(tmp_path):
    """Non-gzip data is a format error."""
    with pytest.raises(ArchiveFormatError):
        unpack_archive(b"definitely not an archive", tmp_path)


def test_unpack_rejects_gzip_of_non_tar(tmp_path):
    """Gzip streams without tar headers are a format error."""
    with pytest.raises(ArchiveFormatError):
        unpack_archive(gzip.compress(b"\x01" * 2048), tmp_path)


def test_unpack_rejects_truncated_stream(sample_tree, tmp_path):
    """A cut-off payload is a format error."""
    payload = pack_directory(sample_tree)
    with pytest.raises(ArchiveFormatError):
        unpack_archive(payload[: len(payload) // 2], tmp_path / "dest")


def test_unpack_overwrites_existing_files(sample_tree, tmp_path):
    """Existing files are truncated, not appended to."""
    dest = tmp_path / "dest"
    (dest / "root" / "a").mkdir(parents=True)
    (dest / "root" / "a" / "b.txt").write_text("a much longer previous content")

    unpack_archive(pack_directory(sample_tree), dest)
    assert (dest / "root" / "a" / "b.txt").read_text() == "hi"


def test_unpack_file(sample_tree, tmp_path):
    """Archives can be unpacked straight from disk."""
    archive = tmp_path / "root.tar.gz"
    archive.write_bytes(pack_directory(sample_tree))
    unpack_file(archive, tmp_path / "dest")
    assert (tmp_path / "dest" / "root" / "a" / "b.txt").exists()


def test_resolve_entry_path(tmp_path):
    """Root entries map to None; nested names map below the root."""
    assert resolve_entry_path(tmp_path, ".") is None
    assert resolve_entry_path(tmp_path, "./") is None
    assert resolve_entry_path(tmp_path, "a/b") == tmp_path / "a" / "b"
    with pytest.raises(PathTraversalError):
        resolve_entry_path(tmp_path, "a/../../b")
