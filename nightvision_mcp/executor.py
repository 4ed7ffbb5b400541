"""
================================================================================
Command Executor for the NightVision CLI
================================================================================

Runs a command asynchronously while capturing stdout and stderr.

FEATURES:
    - Argument vector execution, no shell in between
    - Concurrent capture of stdout and stderr
    - Bounded output buffer (large swagger extract / scan output is expected,
      unbounded output is not)
    - Result dictionary with return code, captured streams and overflow flag

LICENSE: MIT
================================================================================
"""

import asyncio
import logging
import shlex
import traceback
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
BUFFER_EXCEEDED_MESSAGE = "maxBuffer length exceeded"


def quote_arg(arg: str) -> str:
    """Quote an argument for display in a shell command line."""
    return shlex.quote(arg)


def build_command_line(binary: str, args: List[str]) -> str:
    """
    Join the binary and its arguments into a single printable command line.

    Only used for logs and messages; execution takes the argument vector.

    Args:
        binary: Executable name or path
        args: Ordered arguments

    Returns:
        Command line string with every argument shell-quoted as needed
    """
    return " ".join(quote_arg(str(arg)) for arg in [binary, *args])


class CommandExecutor:
    """
    Async command executor with bounded output capture.

    Attributes:
        argv: Executable followed by its arguments
        max_output_bytes: Cap for each captured stream
        stdout_data: Captured standard output
        stderr_data: Captured standard error
        return_code: Command exit code
        exceeded_stream: Name of the stream that outgrew max_output_bytes, if any
    """

    def __init__(self, argv: List[str], max_output_bytes: int, cwd: Optional[str] = None):
        self.argv = [str(arg) for arg in argv]
        self.max_output_bytes = max_output_bytes
        self.cwd = cwd
        self.process: Optional[asyncio.subprocess.Process] = None
        self.stdout_data = b""
        self.stderr_data = b""
        self.return_code: Optional[int] = None
        self.exceeded_stream: Optional[str] = None

    @property
    def buffer_exceeded(self) -> bool:
        return self.exceeded_stream is not None

    async def _read_stream(self, stream: asyncio.StreamReader, name: str):
        """Continuously read one stream into its <name>_data attribute"""
        attr = f"{name}_data"
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            data = getattr(self, attr) + chunk
            if len(data) > self.max_output_bytes:
                if self.exceeded_stream is None:
                    self.exceeded_stream = name
                logger.error(f"Command {name} exceeded {self.max_output_bytes} bytes, terminating process")
                self._kill()
                break
            setattr(self, attr, data)

    def _kill(self):
        if self.process is None or self.process.returncode is not None:
            return
        try:
            self.process.kill()
        except ProcessLookupError:
            pass

    async def execute(self) -> Dict[str, Any]:
        """Execute the command and collect its output"""
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )

            await asyncio.gather(
                self._read_stream(self.process.stdout, "stdout"),
                self._read_stream(self.process.stderr, "stderr"),
            )
            self.return_code = await self.process.wait()

            stdout = self.stdout_data.decode("utf-8", errors="replace")
            stderr = self.stderr_data.decode("utf-8", errors="replace")
            result = {
                "stdout": stdout,
                "stderr": stderr,
                "return_code": self.return_code,
                "success": self.return_code == 0 and not self.buffer_exceeded,
                "buffer_exceeded": self.buffer_exceeded,
            }
            if self.buffer_exceeded:
                result["error"] = f"{self.exceeded_stream} {BUFFER_EXCEEDED_MESSAGE}"
            elif self.return_code != 0:
                detail = stderr.strip() or stdout.strip()
                result["error"] = f"Command failed with exit code {self.return_code}: {detail}"
            return result

        except OSError as e:
            logger.error(f"Error executing command: {str(e)}")
            logger.debug(traceback.format_exc())
            return {
                "stdout": "",
                "stderr": "",
                "return_code": -1,
                "success": False,
                "buffer_exceeded": False,
                "error": str(e),
            }


async def execute_command(argv: List[str], max_output_bytes: int, cwd: Optional[str] = None) -> Dict[str, Any]:
    """Execute a command vector and return the result"""
    executor = CommandExecutor(argv, max_output_bytes=max_output_bytes, cwd=cwd)
    return await executor.execute()
