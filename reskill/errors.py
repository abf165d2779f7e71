"""Exception types raised by the prompt execution runtime."""

from pathlib import Path
from typing import List, Sequence, Union


class ReskillError(Exception):
    """Base class for all reskill errors."""


class TemplateNotFoundError(ReskillError):
    def __init__(self, name: str, tried: Sequence[Union[str, Path]]):
        self.name = name
        self.tried: List[str] = [str(p) for p in tried]
        listing = "\n".join(f"- {p}" for p in self.tried)
        super().__init__(f"Prompt file not found in:\n{listing}")


class TemplateRenderError(ReskillError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Template render error: {message}")


class PromptExecutionError(ReskillError):
    """Raised when a session ends with a non-zero exit code."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"Prompt execution failed with code {exit_code}")


class AgentExecutionError(ReskillError):
    pass
