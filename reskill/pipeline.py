"""
Skill learning stages.

A skill is refreshed by three agents run in sequence:

    Auditor     reads the exemplar code and writes a canon (JSON) of its patterns
    Critic      compares the canon with the current SKILL.md and reports drift
    Instructor  rewrites SKILL.md from the canon and the drift report

Intermediate files live in <root>/.agent/tmp/reskill. Once skills change,
update_context_files() refreshes the skill index inside the project's
context files (AGENTS.md, GEMINI.md, ...).
"""

import re
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml

from .agents import AgentRunner
from .config import ReskillConfig
from .invoker import ModelInvoker
from .serializers import Target
from .session import PromptRunner
from .utils import get_default_filesystem_root

logger = logging.getLogger(__name__)

TMP_DIR = Path(".agent") / "tmp" / "reskill"

SKILLS_BLOCK_PATTERN = re.compile(r"<skills>[\s\S]*?</skills>")
LEGACY_INDEX_HEADING = "## 6. Skill Index"
FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)
DESCRIPTION_LINE_PATTERN = re.compile(r"^description:\s*(.*)$", re.MULTILINE)


def get_tmp_dir(root: Optional[Union[str, Path]] = None) -> Path:
    root = Path(root) if root else get_default_filesystem_root()
    return root / TMP_DIR


def ensure_tmp_dir(root: Optional[Union[str, Path]] = None) -> Path:
    tmp_dir = get_tmp_dir(root)
    tmp_dir.mkdir(parents=True, exist_ok=True)
    return tmp_dir


def _fresh_output_file(root: Optional[Union[str, Path]], file_name: str) -> Path:
    output_file = ensure_tmp_dir(root) / file_name
    if output_file.exists():
        output_file.unlink()
    return output_file


def default_agent_runner(config: ReskillConfig) -> AgentRunner:
    invoker = ModelInvoker(command_template=config.ai.command)
    return AgentRunner(config.model_list, PromptRunner(invoker=invoker))


def _agent_variables(config: ReskillConfig, **variables: Any) -> Dict[str, Any]:
    return {**config.template_variables(), **variables}


async def stage_auditor(
    target: Target,
    config: ReskillConfig,
    root: Optional[Union[str, Path]] = None,
    agent_runner: Optional[AgentRunner] = None,
) -> Path:
    """Audit the target's exemplar code. Returns the canon file path."""
    logger.info(f"Auditing {target.name}...")
    output_file = _fresh_output_file(root, f"{target.slug}-canon.json")
    agent_runner = agent_runner or default_agent_runner(config)

    await agent_runner.run(
        "Auditor",
        "agents/auditor.md",
        _agent_variables(
            config,
            module_path=target.pattern_path,
            output_file=str(output_file),
        ),
    )
    return output_file


async def stage_critic(
    target: Target,
    canon_file: Union[str, Path],
    config: ReskillConfig,
    root: Optional[Union[str, Path]] = None,
    agent_runner: Optional[AgentRunner] = None,
) -> Path:
    """Compare the canon with the current skill. Returns the drift report path."""
    logger.info(f"Critiquing {target.name}...")
    output_file = _fresh_output_file(root, f"{target.slug}-drift.md")
    agent_runner = agent_runner or default_agent_runner(config)

    await agent_runner.run(
        "Critic",
        "agents/critic.md",
        _agent_variables(
            config,
            audit_file=str(canon_file),
            doc_file=str(Path(target.skill_path) / "SKILL.md"),
            skill_dir=target.skill_path,
            output_file=str(output_file),
        ),
    )
    return output_file


async def stage_instructor(
    target: Target,
    canon_file: Union[str, Path],
    report_file: Union[str, Path],
    config: ReskillConfig,
    agent_runner: Optional[AgentRunner] = None,
) -> None:
    """Rewrite the target's SKILL.md from the canon and drift report."""
    logger.info(f"Rewriting {target.name}...")
    agent_runner = agent_runner or default_agent_runner(config)

    await agent_runner.run(
        "Instructor",
        "agents/instructor.md",
        _agent_variables(
            config,
            audit_file=str(canon_file),
            report_file=str(report_file),
            target_file=str(Path(target.skill_path) / "SKILL.md"),
            skill_dir=target.skill_path,
        ),
    )


async def refresh_skill(
    target: Target,
    config: ReskillConfig,
    root: Optional[Union[str, Path]] = None,
    agent_runner: Optional[AgentRunner] = None,
) -> None:
    """Run Auditor, Critic and Instructor for one target."""
    agent_runner = agent_runner or default_agent_runner(config)
    canon_file = await stage_auditor(target, config, root, agent_runner)
    report_file = await stage_critic(target, canon_file, config, root, agent_runner)
    await stage_instructor(target, canon_file, report_file, config, agent_runner)


# ---------------------------------------------------------------------------
# Context file skill index
# ---------------------------------------------------------------------------


def read_skill_description(skill_md: Path) -> str:
    """Return the description from a SKILL.md's YAML frontmatter."""
    content = skill_md.read_text(encoding="utf-8")

    match = FRONTMATTER_PATTERN.match(content)
    if match:
        try:
            frontmatter = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse frontmatter in {skill_md}: {e}")
            frontmatter = {}
        if isinstance(frontmatter, dict) and frontmatter.get("description"):
            return str(frontmatter["description"]).strip()

    line = DESCRIPTION_LINE_PATTERN.search(content)
    if line and line.group(1).strip():
        return line.group(1).strip()
    return "No description provided."


def list_skills(skills_dir: Union[str, Path]) -> List[Tuple[str, Path]]:
    """Return (name, SKILL.md path) for every skill directory, sorted by name."""
    skills_dir = Path(skills_dir)
    if not skills_dir.is_dir():
        logger.warning(f"Skills directory not found: {skills_dir}")
        return []

    skills = []
    for item in sorted(skills_dir.iterdir()):
        skill_md = item / "SKILL.md"
        if item.is_dir() and skill_md.is_file():
            skills.append((item.name, skill_md))
    return skills


def build_skill_index(skills_dir: Union[str, Path]) -> str:
    index = "\n".join(
        f"- **[{name}](file://{skill_md.resolve()})**: {read_skill_description(skill_md)}"
        for name, skill_md in list_skills(skills_dir)
    )
    return (
        "\n\nYou have access to the following specialized skills. "
        "Use them to perform complex tasks correctly.\n\n"
        f"{index}\n\n"
    )


def _replace_skill_index(content: str, section: str, context_file: Path) -> str:
    if "<skills>" in content and "</skills>" in content:
        return SKILLS_BLOCK_PATTERN.sub(lambda _: f"<skills>\n{section}</skills>", content, count=1)

    if LEGACY_INDEX_HEADING in content:
        pre, _, remaining = content.partition(LEGACY_INDEX_HEADING)
        next_heading = re.search(r"^## ", remaining[1:], re.MULTILINE)
        post = remaining[next_heading.start() + 1 :] if next_heading else ""
        return pre + LEGACY_INDEX_HEADING + section + post

    logger.warning(f"No <skills> tag or Skill Index section found in {context_file}. Appending...")
    return content + "\n\n<skills>\n" + section + "</skills>"


def update_context_files(
    skills_dir: Union[str, Path], context_files: Sequence[Union[str, Path]]
) -> List[Path]:
    """Write the current skill index into each context file. Returns the files updated."""
    section = build_skill_index(skills_dir)
    updated = []

    for context_file in map(Path, context_files):
        if not context_file.is_file():
            logger.warning(f"Context file not found: {context_file}")
            continue

        content = context_file.read_text(encoding="utf-8")
        context_file.write_text(
            _replace_skill_index(content, section, context_file), encoding="utf-8"
        )
        logger.info(f"Updated {context_file}")
        updated.append(context_file)

    return updated
