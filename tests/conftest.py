import io
import os
import sys
import tarfile
from pathlib import Path

import pytest

from embedpy.archives.codec import pack_directory
from embedpy.runtimes.platforms import PlatformInfo

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX permissions and shebangs")


def make_tar_gz(entries) -> bytes:
    """Build a gzip tar from (name, type, content) tuples."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for name, entry_type, content in entries:
            info = tarfile.TarInfo(name)
            info.type = entry_type
            info.mode = 0o644
            if entry_type == tarfile.SYMTYPE:
                info.linkname = content.decode()
                archive.addfile(info)
            elif entry_type == tarfile.REGTYPE:
                info.size = len(content)
                archive.addfile(info, io.BytesIO(content))
            else:
                archive.addfile(info)
    return buf.getvalue()


@pytest.fixture
def sample_tree(tmp_path):
    """``root/a/b.txt`` ("hi", 0644) plus an empty ``root/c/``."""
    root = tmp_path / "src" / "root"
    (root / "a").mkdir(parents=True)
    (root / "c").mkdir()
    b_txt = root / "a" / "b.txt"
    b_txt.write_text("hi")
    b_txt.chmod(0o644)
    return root


@pytest.fixture
def fake_binary(tmp_path):
    """A stand-in executable with some recognisable content."""
    binary = tmp_path / "bin" / "host"
    binary.parent.mkdir()
    binary.write_bytes(b"\x7fELF-host-binary" * 64)
    binary.chmod(0o755)
    return binary


@pytest.fixture
def linux_x86_64():
    return PlatformInfo(os_name="linux", arch="x86_64")


@pytest.fixture
def runtime_tree(tmp_path):
    """A minimal relocatable runtime laid out as ``python/bin`` + ``python/lib``.

    ``python3.10`` forwards to the interpreter running the tests and
    ``pip3.10`` carries the build prefix in its shebang.
    """
    prefix = tmp_path / "runtime-src" / "python"
    bin_dir = prefix / "bin"
    lib_dir = prefix / "lib"
    bin_dir.mkdir(parents=True)
    lib_dir.mkdir()

    interpreter = bin_dir / "python3.10"
    interpreter.write_text(f'#!/bin/sh\nexec "{sys.executable}" "$@"\n')
    interpreter.chmod(0o644)

    pip = bin_dir / "pip3.10"
    pip.write_text("#!/install/bin/python3.10\nimport sys\n")
    pip.chmod(0o644)

    (lib_dir / "python3.10").mkdir()
    (lib_dir / "python3.10" / "os.py").write_text("# stdlib placeholder\n")
    return prefix


@pytest.fixture
def runtime_archive(runtime_tree) -> bytes:
    return pack_directory(runtime_tree)
