"""Subprocess execution with loader fallback."""
import os
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from embedpy.errors import CommandFailedError, LaunchError
from embedpy.execution.fallback import FallbackPolicy, Retry
from embedpy.logging import get_logger
from embedpy.types import CommandResult, FailureKind

logger = get_logger(__name__)

PathLike = Union[str, Path]


def classify_failure(error: BaseException) -> FailureKind:
    """Separate processes that ran and failed from processes that never started."""
    if isinstance(error, CommandFailedError):
        return FailureKind.EXIT
    if isinstance(error, (LaunchError, OSError)):
        return FailureKind.LAUNCH
    raise TypeError(f"Cannot classify failure: {error!r}")


class ProcessLauncher:
    """Runs commands in the caller's working directory.

    Launch failures on existing targets are handed to the registered
    fallback policies, and the first policy that proposes a retry gets
    exactly one attempt. Nonzero exits are never retried.
    """

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        fallbacks: Sequence[FallbackPolicy] = (),
        verbose: bool = False,
    ):
        self.env = dict(env) if env is not None else None
        self.fallbacks = list(fallbacks)
        self.verbose = verbose

    def execute(
        self, command: PathLike, args: Sequence[PathLike] = (), stream: bool = False
    ) -> CommandResult:
        """Run command with args.

        Captures combined stdout/stderr unless stream is set, in which case
        the child writes straight to the host's streams.

        Raises:
            CommandFailedError: If the process exits nonzero
            LaunchError: If the process cannot be started
        """
        args = [os.fspath(a) for a in args]
        try:
            return self._run(os.fspath(command), args, stream)
        except LaunchError as e:
            retry = self._fallback_for(Path(command), args, e)
            if retry is None:
                raise
            loader, loader_args = retry
            logger.info({
                "event": "loader_fallback",
                "target": os.fspath(command),
                "loader": str(loader)
            })
            return self._run(os.fspath(loader), loader_args, stream)

    def _fallback_for(
        self, target: Path, args: List[str], error: LaunchError
    ) -> Optional[Retry]:
        if classify_failure(error) is not FailureKind.LAUNCH:
            return None
        if not target.is_file():
            return None
        for policy in self.fallbacks:
            retry = policy.retry_command(target, args)
            if retry is not None:
                return retry
        return None

    def _run(self, command: str, args: List[str], stream: bool) -> CommandResult:
        argv = [command, *args]
        cwd = os.getcwd()
        logger.debug({"event": "command_exec", "argv": argv, "cwd": cwd, "stream": stream})

        try:
            if stream:
                proc = subprocess.run(argv, cwd=cwd, env=self.env)
            else:
                proc = subprocess.run(
                    argv,
                    cwd=cwd,
                    env=self.env,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                )
        except OSError as e:
            logger.debug({"event": "command_launch_failed", "command": command, "error": str(e)})
            raise LaunchError(command, str(e)) from e

        output = proc.stdout or b""
        if self.verbose and output:
            logger.debug({
                "event": "command_output",
                "command": command,
                "output": output.decode(errors="replace")
            })

        if proc.returncode != 0:
            logger.debug({
                "event": "command_failed",
                "command": command,
                "returncode": proc.returncode
            })
            raise CommandFailedError(command, args, proc.returncode, output)

        return CommandResult(command=command, args=args, returncode=proc.returncode, output=output)
