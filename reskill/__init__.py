from .config import DEFAULT_MODELS, ReskillConfig
from .errors import (
    AgentExecutionError,
    PromptExecutionError,
    ReskillError,
    TemplateNotFoundError,
    TemplateRenderError,
)
from .invoker import AsyncProcessRunner, ModelInvoker, ProcessRunner
from .serializers import AttemptResult, ProcessResult, PromptRequest, SessionResult, Target
from .session import PromptRunner
from .templating import TemplateRenderer
from .agents import AgentRunner

__all__ = [
    "DEFAULT_MODELS",
    "ReskillConfig",
    "ReskillError",
    "TemplateNotFoundError",
    "TemplateRenderError",
    "PromptExecutionError",
    "AgentExecutionError",
    "ProcessRunner",
    "AsyncProcessRunner",
    "ModelInvoker",
    "AttemptResult",
    "ProcessResult",
    "PromptRequest",
    "SessionResult",
    "Target",
    "PromptRunner",
    "TemplateRenderer",
    "AgentRunner",
]
