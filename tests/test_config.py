import pytest
from pydantic import ValidationError

from reskill.config import (
    DEFAULT_MODELS,
    MODEL_COMMAND_ENV_VAR,
    MODELS_ENV_VAR,
    Constitution,
    ReskillConfig,
)
from reskill.invoker import DEFAULT_MODEL_COMMAND
from reskill.serializers import PromptRequest, Target, parse_model_list


def test_defaults():
    config = ReskillConfig()
    assert config.ai.models == DEFAULT_MODELS
    assert config.ai.command == DEFAULT_MODEL_COMMAND
    assert config.model_list == ["gemini-3-pro-preview", "gemini-3-flash-preview"]
    assert config.skills_dir == ".skills"
    assert config.outputs.context_files == []


def test_template_variables_include_extras_and_constitution():
    config = ReskillConfig(
        constitution={"architecture": "ARCH.md", "patterns": ["a.md", "b.md"], "tone": "terse"},
        project="demo",
    )

    variables = config.template_variables()

    assert variables["project"] == "demo"
    assert variables["constitution"] == {
        "architecture": "ARCH.md",
        "patterns": ["a.md", "b.md"],
        "tone": "terse",
    }


def test_template_variables_drop_unset_patterns():
    variables = ReskillConfig(constitution=Constitution(architecture="A")).template_variables()
    assert variables == {"constitution": {"architecture": "A"}}


def test_env_overrides(monkeypatch):
    monkeypatch.setenv(MODELS_ENV_VAR, "x, y")
    monkeypatch.setenv(MODEL_COMMAND_ENV_VAR, "my-cli --model {model}")
    config = ReskillConfig()

    overridden = config.with_env_overrides()

    assert overridden.model_list == ["x", "y"]
    assert overridden.ai.command == "my-cli --model {model}"
    assert config.ai.models == DEFAULT_MODELS


def test_env_overrides_ignore_empty_values(monkeypatch):
    monkeypatch.setenv(MODELS_ENV_VAR, "")
    monkeypatch.delenv(MODEL_COMMAND_ENV_VAR, raising=False)

    overridden = ReskillConfig().with_env_overrides()

    assert overridden.ai.models == DEFAULT_MODELS
    assert overridden.ai.command == DEFAULT_MODEL_COMMAND


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("a,b", ["a", "b"]),
        (" a , ,b ", ["a", "b"]),
        (["a", " b", ""], ["a", "b"]),
        (None, []),
    ],
)
def test_parse_model_list(raw, expected):
    assert parse_model_list(raw) == expected


def test_prompt_request_splits_models():
    request = PromptRequest(template_name="t", models="m1,m2")
    assert request.models == ["m1", "m2"]
    assert request.variables == {}
    assert request.interactive is False


def test_prompt_request_requires_a_model():
    with pytest.raises(ValidationError):
        PromptRequest(template_name="t", models=" , ")


def test_target_slug_replaces_whitespace():
    target = Target(name="Data  Access\tLayer", skill_path="s", pattern_path="p")
    assert target.slug == "Data-Access-Layer"
