import os
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .invoker import DEFAULT_MODEL_COMMAND
from .serializers import parse_model_list

logger = logging.getLogger(__name__)

DEFAULT_MODELS = "gemini-3-pro-preview,gemini-3-flash-preview"

MODELS_ENV_VAR = "RESKILL_MODELS"
MODEL_COMMAND_ENV_VAR = "RESKILL_MODEL_COMMAND"


class Constitution(BaseModel):
    """Architectural guidelines threaded through every prompt as template variables."""

    model_config = ConfigDict(extra="allow")

    architecture: str = ""
    patterns: Optional[Union[str, List[str]]] = None


class AIConfig(BaseModel):
    models: Union[str, List[str]] = Field(
        default=DEFAULT_MODELS,
        description="Model rotation list, comma-separated or as a list, highest priority first.",
    )
    command: str = Field(
        default=DEFAULT_MODEL_COMMAND,
        description="Model CLI command; '{model}' is replaced with the model id.",
    )


class OutputsConfig(BaseModel):
    context_files: List[str] = Field(default_factory=list)


class ReskillConfig(BaseModel):
    """Settings consumed by the prompt runtime and the skill pipeline.

    Unknown top-level keys are kept and handed to templates verbatim.
    """

    model_config = ConfigDict(extra="allow")

    constitution: Constitution = Field(default_factory=Constitution)
    ai: AIConfig = Field(default_factory=AIConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)
    skills_dir: str = ".skills"

    @property
    def model_list(self) -> List[str]:
        return parse_model_list(self.ai.models)

    def extra_variables(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def template_variables(self) -> Dict[str, Any]:
        """Variables every agent prompt receives: the constitution plus pass-through extras."""
        return {
            **self.extra_variables(),
            "constitution": self.constitution.model_dump(exclude_none=True),
        }

    def with_env_overrides(self) -> "ReskillConfig":
        """Return a copy with RESKILL_MODELS / RESKILL_MODEL_COMMAND applied."""
        ai = self.ai.model_copy()
        models = os.getenv(MODELS_ENV_VAR)
        if models:
            logger.debug(f"{MODELS_ENV_VAR} overrides model list: {models}")
            ai.models = models
        command = os.getenv(MODEL_COMMAND_ENV_VAR)
        if command:
            logger.debug(f"{MODEL_COMMAND_ENV_VAR} overrides model command: {command}")
            ai.command = command
        return self.model_copy(update={"ai": ai})
