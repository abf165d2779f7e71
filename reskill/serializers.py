import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def parse_model_list(models: Union[str, List[str], None]) -> List[str]:
    """Split a comma-separated model string (or list) into an ordered list of ids."""
    if models is None:
        return []
    if isinstance(models, str):
        models = models.split(",")
    return [m.strip() for m in models if m and m.strip()]


class PromptRequest(BaseModel):
    """Input to one prompt session."""

    model_config = ConfigDict(frozen=True)

    template_name: str = Field(
        description="Logical template identifier, resolved to '<name>.md' in the prompt search paths."
    )
    variables: Dict[str, Any] = Field(default_factory=dict)
    models: List[str] = Field(
        description="Model ids in priority order. Accepts a comma-separated string."
    )
    interactive: bool = False

    @field_validator("models", mode="before")
    @classmethod
    def _split_models(cls, value: Any) -> List[str]:
        models = parse_model_list(value)
        if not models:
            raise ValueError("at least one model is required")
        return models


class ProcessResult(BaseModel):
    """Raw outcome of one external process run."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    stdout: str = ""
    stderr: str = ""


class AttemptResult(BaseModel):
    """Classified outcome of running a prompt against one model."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    should_retry: bool = False
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class SessionResult(BaseModel):
    output: str = Field(default="", description="Output of the last successful model attempt.")
    rounds: int = 0
    prompt: str = Field(default="", description="Final accumulated prompt text.")


class Target(BaseModel):
    """A skill target: the exemplar code it learns from and where its SKILL.md lives."""

    name: str
    skill_path: str
    pattern_path: str
    overrides: Optional[Dict[str, Any]] = None

    @property
    def slug(self) -> str:
        return re.sub(r"\s+", "-", self.name)
