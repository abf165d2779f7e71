import logging
from typing import Any, Dict, List, Optional, Union

from .config import DEFAULT_MODELS
from .errors import AgentExecutionError
from .serializers import PromptRequest, SessionResult
from .session import PromptRunner

logger = logging.getLogger(__name__)


class AgentRunner:
    """Runs a named agent (Auditor, Critic, Instructor, ...) as one non-interactive prompt session."""

    def __init__(
        self,
        models: Union[str, List[str]] = DEFAULT_MODELS,
        runner: Optional[PromptRunner] = None,
    ):
        self.models = models
        self.runner = runner or PromptRunner()

    async def run(
        self, agent_name: str, prompt_path: str, args: Dict[str, Any]
    ) -> SessionResult:
        logger.info(f"Agent {agent_name} working...")

        try:
            request = PromptRequest(
                template_name=prompt_path, variables=args, models=self.models
            )
            return await self.runner.run(request)
        except Exception as e:
            raise AgentExecutionError(f"Agent {agent_name} failed execution: {e}") from e
