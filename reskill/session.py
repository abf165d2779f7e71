import os
import json
import logging
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from prompt_toolkit import PromptSession

from .errors import PromptExecutionError, ReskillError, TemplateRenderError
from .invoker import ModelInvoker
from .serializers import PromptRequest, SessionResult
from .templating import TemplateRenderer

logger = logging.getLogger(__name__)

EXIT_WORDS = ("exit", "quit")

AskFn = Callable[[], Awaitable[str]]


async def ask_operator() -> str:
    """Read one line from the operator. EOF or Ctrl+C ends the session."""
    session = PromptSession()
    try:
        return await session.prompt_async("> ")
    except (EOFError, KeyboardInterrupt):
        return "exit"


class PromptRunner:
    """Runs one prompt session: locate, render, rotate models, converse, clean up.

    Each call to run() is an independent session. Models are tried in list
    order; a quota-exhausted model hands over to the next one, any other
    failure ends the round at once. In interactive mode the model output and
    the operator's reply are appended to the prompt and another round starts,
    until the operator types "exit" or "quit".
    """

    def __init__(
        self,
        renderer: Optional[TemplateRenderer] = None,
        invoker: Optional[ModelInvoker] = None,
        logger: Optional[logging.Logger] = None,
        ask: Optional[AskFn] = None,
        tmp_dir: Optional[Union[str, Path]] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.renderer = renderer or TemplateRenderer()
        self.invoker = invoker or ModelInvoker(logger=self.logger)
        self.ask = ask or ask_operator
        self.tmp_dir = str(tmp_dir) if tmp_dir else None

    async def run(self, request: PromptRequest) -> SessionResult:
        """Execute the session described by request.

        Raises:
            TemplateNotFoundError: The template is in none of the search paths.
            TemplateRenderError: The template is malformed.
            PromptExecutionError: No model succeeded, or one failed fatally.
        """
        template_path = self.renderer.locate(request.template_name)

        buffer_path: Optional[Path] = None
        final_code = 0
        rounds = 0
        last_output = ""
        current_prompt = ""

        try:
            rendered = await self._render(template_path, request)

            fd, name = tempfile.mkstemp(prefix=".temp_prompt_", suffix=".md", dir=self.tmp_dir)
            buffer_path = Path(name)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(rendered)
            self.logger.info(f"Wrote active prompt to {buffer_path}")

            self.logger.info(f"Model rotation strategy: [{', '.join(request.models)}]")
            current_prompt = rendered

            while True:
                rounds += 1
                success, output, code = await self._run_round(request.models, current_prompt)

                if not success:
                    final_code = code or 1
                    self.logger.error("All attempts failed.")
                    break

                last_output = output
                if not request.interactive:
                    break

                current_prompt += f"\n{last_output}"

                self.logger.info('(Type "exit" or "quit" to end the session)')
                answer = await self.ask()
                if answer.strip().lower() in EXIT_WORDS:
                    break
                current_prompt += f"\nUser: {answer}\n"
        finally:
            if buffer_path is not None:
                self._cleanup(buffer_path)

        if final_code != 0:
            raise PromptExecutionError(final_code)

        return SessionResult(output=last_output, rounds=rounds, prompt=current_prompt)

    async def _render(self, template_path: Path, request: PromptRequest) -> str:
        self.logger.debug(
            f"Rendering template with variables: {json.dumps(request.variables, indent=2, default=str)}"
        )
        try:
            return await self.renderer.render_file(template_path, request.variables)
        except TemplateRenderError as e:
            self.logger.error(str(e))
            raise
        except OSError as e:
            raise ReskillError(f"Error reading prompt file: {e}") from e

    async def _run_round(self, models: List[str], prompt: str) -> Tuple[bool, str, int]:
        """Try each model in order. Returns (success, output, fatal exit code)."""
        for model in models:
            result = await self.invoker.invoke(model, prompt)

            if result.succeeded:
                return True, result.output, 0

            if result.should_retry:
                self.logger.info("Switching to next model...")
                continue

            return False, "", result.exit_code

        return False, "", 0

    def _cleanup(self, buffer_path: Path) -> None:
        try:
            buffer_path.unlink()
            self.logger.debug("Removed active prompt file")
        except OSError as e:
            self.logger.debug(f"Could not remove {buffer_path}: {e}")
