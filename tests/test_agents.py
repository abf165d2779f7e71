import pytest
from unittest.mock import AsyncMock, MagicMock

from reskill.agents import AgentRunner
from reskill.errors import AgentExecutionError, PromptExecutionError
from reskill.serializers import PromptRequest, SessionResult


@pytest.fixture
def prompt_runner():
    runner = MagicMock()
    runner.run = AsyncMock(return_value=SessionResult(output="done", rounds=1))
    return runner


@pytest.mark.asyncio
async def test_agent_runs_non_interactive_request(prompt_runner):
    agent = AgentRunner(models="m1, m2", runner=prompt_runner)

    result = await agent.run("Auditor", "agents/auditor.md", {"module_path": "src"})

    assert result.output == "done"
    request = prompt_runner.run.await_args.args[0]
    assert isinstance(request, PromptRequest)
    assert request.template_name == "agents/auditor.md"
    assert request.variables == {"module_path": "src"}
    assert request.models == ["m1", "m2"]
    assert request.interactive is False


@pytest.mark.asyncio
async def test_agent_wraps_failures_with_its_name(prompt_runner):
    prompt_runner.run.side_effect = PromptExecutionError(3)
    agent = AgentRunner(models=["m1"], runner=prompt_runner)

    with pytest.raises(AgentExecutionError) as exc_info:
        await agent.run("Critic", "agents/critic.md", {})

    assert str(exc_info.value) == (
        "Agent Critic failed execution: Prompt execution failed with code 3"
    )
    assert isinstance(exc_info.value.__cause__, PromptExecutionError)


@pytest.mark.asyncio
async def test_agent_without_models_fails_before_running(prompt_runner):
    agent = AgentRunner(models="", runner=prompt_runner)

    with pytest.raises(AgentExecutionError, match="Agent Instructor failed execution"):
        await agent.run("Instructor", "agents/instructor.md", {})

    prompt_runner.run.assert_not_awaited()


def test_agent_defaults_to_builtin_models():
    agent = AgentRunner()
    assert agent.models == "gemini-3-pro-preview,gemini-3-flash-preview"
