"""Host filesystem commands.

Runs mkfs, mount, umount and mountpoint as subprocesses. A non-zero
exit becomes CommandFailureError carrying the combined output, except
for the mountpoint check whose exit status is the answer. A utility that
cannot be started fails the same way with exit status 127.
"""

import asyncio
import logging
import time

from pydantic import BaseModel

from blocker.errors import CommandFailureError
from blocker.metrics import BLOCKER_COMMAND_DURATION, BLOCKER_COMMAND_FAILURES

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


class CommandResult(BaseModel):
    """Exit status and combined stdout/stderr of a finished command."""

    argv: list[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class HostCommands:
    """Async runner for the host utilities the driver depends on."""

    async def run(self, argv: list[str]) -> CommandResult:
        """Run a command and capture stdout and stderr together.

        Raises:
            CommandFailureError: The command could not be started (exit
                status 127, as a shell would report it).
        """
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            stdout, _ = await proc.communicate()
        except OSError as e:
            BLOCKER_COMMAND_FAILURES.labels(command=argv[0]).inc()
            raise CommandFailureError(
                argv, COMMAND_NOT_FOUND, str(e), f"Command {argv[0]} could not be run"
            ) from e
        finally:
            BLOCKER_COMMAND_DURATION.labels(command=argv[0]).observe(time.monotonic() - start)

        return CommandResult(
            argv=argv,
            returncode=proc.returncode if proc.returncode is not None else -1,
            output=stdout.decode("utf-8", errors="replace"),
        )

    async def _check(self, argv: list[str], message: str) -> CommandResult:
        result = await self.run(argv)
        if not result.ok:
            BLOCKER_COMMAND_FAILURES.labels(command=argv[0]).inc()
            raise CommandFailureError(argv, result.returncode, result.output, message)
        return result

    async def format(self, fs_type: str, device: str) -> None:
        await self._check(
            ["mkfs", "-t", fs_type, device],
            f"Formatting device {device} failed",
        )

    async def mount(self, device: str, directory: str) -> None:
        await self._check(
            ["mount", device, directory],
            f"Mounting device {device} to {directory} failed",
        )

    async def unmount(self, directory: str) -> None:
        await self._check(["umount", directory], f"Unmounting {directory} failed")

    async def is_mountpoint(self, directory: str) -> bool:
        result = await self.run(["mountpoint", "-q", directory])
        return result.ok
