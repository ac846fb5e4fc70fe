"""
Command Executor

Runs external programs (download tools, the ffmpeg engine) as asyncio
subprocesses, streams their stdout line by line to an optional callback and
turns spawn failures and non-zero exits into application errors.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from exceptions import ExternalToolError, ToolUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    program: str
    args: list
    returncode: int
    stdout: str
    stderr: str


class CommandExecutor:
    """Runs one external program per call; holds no per-call state."""

    async def run(
        self,
        program: str,
        args: Sequence,
        input: Optional[bytes] = None,
        capture_output: bool = True,
        line_callback: Optional[Callable[[str], None]] = None,
    ) -> CommandResult:
        """
        Run a program and wait for it to exit.

        Args:
            program: Executable name or path
            args: Arguments, converted with str()
            input: Optional bytes written to stdin, which is then closed
            capture_output: Keep stdout/stderr text in the result
            line_callback: Called with each decoded stdout line as it arrives

        Returns:
            CommandResult for a zero exit status

        Raises:
            ToolUnavailableError: If the program cannot be spawned
            ExternalToolError: If the program exits non-zero
        """
        cmd = [str(program)] + [str(arg) for arg in args]
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            logger.warning(f"Cannot start {program}: {e}")
            raise ToolUnavailableError(str(program)) from e

        try:
            if input is not None:
                process.stdin.write(input)
                await process.stdin.drain()
                process.stdin.close()

            # stderr is drained concurrently so a chatty engine cannot fill the pipe
            stderr_task = asyncio.create_task(process.stderr.read())
            stdout_lines = []
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                decoded_line = line.decode(errors='replace').rstrip('\r\n')
                if capture_output:
                    stdout_lines.append(decoded_line)
                if line_callback:
                    line_callback(decoded_line)

            stderr = (await stderr_task).decode(errors='replace')
            returncode = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                logger.warning(f"Killing {program} (pid {process.pid}) after cancellation")
                process.kill()
                await process.wait()
            raise

        if returncode != 0:
            logger.error(f"{program} exited with code {returncode}: {stderr.strip()[-500:]}")
            raise ExternalToolError(str(program), returncode, stderr)

        return CommandResult(
            program=str(program),
            args=cmd[1:],
            returncode=returncode,
            stdout='\n'.join(stdout_lines) if capture_output else '',
            stderr=stderr if capture_output else '',
        )
