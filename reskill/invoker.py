import sys
import time
import codecs
import shlex
import asyncio
import logging
from typing import Callable, List, Optional, Protocol

from .serializers import AttemptResult, ProcessResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL_COMMAND = "gemini --yolo --model {model}"

# Substrings in a model CLI's stderr that mean the provider rate-limited us
EXHAUSTION_SIGNATURES = ("429", "exhausted your capacity", "ResourceExhausted")

_CHUNK_SIZE = 4096


def is_exhausted(stderr: str) -> bool:
    """Return True if stderr carries a quota-exhaustion signature."""
    return any(signature in stderr for signature in EXHAUSTION_SIGNATURES)


def _write_through(stream) -> Callable[[str], None]:
    def _write(chunk: str) -> None:
        stream.write(chunk)
        stream.flush()

    return _write


class ProcessRunner(Protocol):
    """Runs an external command to completion, feeding it input_text on stdin.

    Raises OSError if the command cannot be started.
    """

    async def run(self, command: List[str], input_text: str) -> ProcessResult: ...


class AsyncProcessRunner:
    """ProcessRunner backed by asyncio subprocesses.

    Output is mirrored live through on_stdout/on_stderr while it is also
    buffered for the returned ProcessResult.
    """

    def __init__(
        self,
        on_stdout: Optional[Callable[[str], None]] = None,
        on_stderr: Optional[Callable[[str], None]] = None,
        cwd: Optional[str] = None,
    ):
        self.on_stdout = on_stdout or _write_through(sys.stdout)
        self.on_stderr = on_stderr or _write_through(sys.stderr)
        self.cwd = cwd

    async def run(self, command: List[str], input_text: str) -> ProcessResult:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=self.cwd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr, _ = await asyncio.gather(
                self._pump(process.stdout, self.on_stdout),
                self._pump(process.stderr, self.on_stderr),
                self._feed(process.stdin, input_text),
            )
            return_code = await process.wait()
        finally:
            if process.returncode is None:
                logger.debug("Killing model process after stream failure")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        return ProcessResult(
            exit_code=1 if return_code is None else return_code,
            stdout=stdout,
            stderr=stderr,
        )

    @staticmethod
    async def _feed(stdin: asyncio.StreamWriter, input_text: str) -> None:
        try:
            stdin.write(input_text.encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The child exited without reading all of its input
            logger.debug("Model process closed stdin early")
        finally:
            stdin.close()

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, callback: Callable[[str], None]) -> str:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        chunks = []
        while True:
            raw = await stream.read(_CHUNK_SIZE)
            text = decoder.decode(raw, final=not raw)
            if text:
                callback(text)
                chunks.append(text)
            if not raw:
                break
        return "".join(chunks)


class ModelInvoker:
    """Runs a prompt against one model through the model CLI and classifies the result."""

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        command_template: str = DEFAULT_MODEL_COMMAND,
        logger: Optional[logging.Logger] = None,
    ):
        self.runner = runner or AsyncProcessRunner()
        self.command_template = command_template
        self.logger = logger or logging.getLogger(__name__)

    def build_command(self, model_id: str) -> List[str]:
        return shlex.split(self.command_template.format(model=model_id))

    async def invoke(self, model_id: str, prompt_text: str) -> AttemptResult:
        self.logger.info(f"Attempting with model: {model_id}...")
        start = time.monotonic()

        try:
            command = self.build_command(model_id)
            result = await self.runner.run(command, prompt_text)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to spawn model CLI ({model_id}): {e}")
            return AttemptResult(exit_code=1, should_retry=False, output="")

        if result.exit_code != 0 and is_exhausted(result.stderr):
            duration_ms = int((time.monotonic() - start) * 1000)
            self.logger.warning(
                f"Model {model_id} exhausted (429). Duration: {duration_ms}ms"
            )
            return AttemptResult(
                exit_code=result.exit_code, should_retry=True, output=result.stdout
            )

        return AttemptResult(
            exit_code=result.exit_code, should_retry=False, output=result.stdout
        )
