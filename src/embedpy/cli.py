"""Command line interface for embedpy."""

import argparse
import pathlib
import sys
from typing import List, Optional

from embedpy.archives.sealed import (
    detect_seal,
    seal_directory_into_binary,
    seal_directory_into_running_executable,
    unseal_next_to_executable,
)
from embedpy.errors import CommandFailedError, EmbedPyError, log_error
from embedpy.logging import configure_logging, get_logger
from embedpy.runtimes.instance import install_package, python_exec, runtime_session
from embedpy.types import RunnerConfig

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="embedpy",
        description="Seal, unseal and run an embedded Python runtime.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=None,
                        help="Debug logging (default: EMBEDPY_VERBOSE).")
    parser.add_argument("--keep", dest="keep_extracted_files", action="store_true", default=None,
                        help="Keep extracted runtime files (default: EMBEDPY_KEEP_EXTRACTED).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_seal = subparsers.add_parser("seal", help="Seal a directory into a copy of an executable.")
    p_seal.add_argument("directory", type=pathlib.Path)
    p_seal.add_argument("--binary", type=pathlib.Path, default=None,
                        help="Executable to seal into (default: the running executable).")

    p_unseal = subparsers.add_parser("unseal", help="Extract a sealed payload next to its executable.")
    p_unseal.add_argument("--executable", type=pathlib.Path, default=None)

    p_detect = subparsers.add_parser("detect", help="Report whether a file carries a payload.")
    p_detect.add_argument("path", type=pathlib.Path)

    p_run = subparsers.add_parser("run", help="Run the embedded interpreter.")
    p_run.add_argument("--bundle-dir", type=pathlib.Path, required=True,
                       help="Directory holding <os>-<arch>.tar.gz runtime archives.")
    p_run.add_argument("--extraction-dir", type=pathlib.Path, default=None)
    p_run.add_argument("--install", action="append", default=[], metavar="SPEC",
                       help="Package to install before running (repeatable).")
    p_run.add_argument("args", nargs=argparse.REMAINDER,
                       help="Arguments passed to the interpreter.")
    return parser


def _run(args: argparse.Namespace, config: RunnerConfig) -> int:
    interpreter_args = args.args[1:] if args.args[:1] == ["--"] else args.args
    with runtime_session(bundle_dir=args.bundle_dir, config=config) as runtime:
        for spec in args.install:
            install_package(runtime, spec)
        if interpreter_args:
            python_exec(runtime, *interpreter_args, stream=True)
    return 0


def exit_status(returncode: int) -> int:
    """Shell-style exit status for a child return code; signals map to 128 + n."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def main(argv: Optional[List[str]] = None) -> int:
    """Run the embedpy CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """
    args = _build_parser().parse_args(argv)
    config = RunnerConfig.from_env(
        verbose=args.verbose,
        keep_extracted_files=args.keep_extracted_files,
        extraction_parent=getattr(args, "extraction_dir", None),
    )
    configure_logging("DEBUG" if config.verbose else "INFO")

    try:
        if args.command == "seal":
            if args.binary is not None:
                sealed = seal_directory_into_binary(args.binary, args.directory)
            else:
                sealed = seal_directory_into_running_executable(args.directory)
            print(f"Sealed {args.directory} into {sealed}")
            return 0

        if args.command == "unseal":
            if unseal_next_to_executable(args.executable):
                print("Extracted sealed directory next to executable")
            else:
                print("No sealed directory found in executable")
            return 0

        if args.command == "detect":
            info = detect_seal(args.path)
            if info is None:
                print(f"{args.path}: not sealed")
            else:
                print(f"{args.path}: payload at {info.payload_offset}, {info.payload_length} bytes")
            return 0

        return _run(args, config)

    except CommandFailedError as e:
        log_error(e, logger=logger)
        return exit_status(e.returncode)
    except (EmbedPyError, OSError) as e:
        log_error(e, {"command": args.command}, logger=logger)
        return 1


if __name__ == "__main__":
    sys.exit(main())
