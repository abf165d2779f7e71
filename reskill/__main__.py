import sys
import asyncio
import logging
import argparse
from typing import Any, Dict, List

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config import ReskillConfig
from .errors import PromptExecutionError, ReskillError
from .invoker import ModelInvoker
from .pipeline import update_context_files
from .serializers import PromptRequest
from .session import PromptRunner
from .utils import load_all_dotenv

console = Console()


def parse_template_variables(extra_args: List[str]) -> Dict[str, Any]:
    """Turn leftover '--key value', '--key=value' and bare '--flag' args into template variables."""
    variables: Dict[str, Any] = {}
    i = 0
    while i < len(extra_args):
        arg = extra_args[i]
        if not arg.startswith("--") or arg == "--":
            raise ValueError(f"Unexpected argument: {arg}")

        key, sep, value = arg[2:].partition("=")
        if not sep:
            if i + 1 < len(extra_args) and not extra_args[i + 1].startswith("--"):
                value = extra_args[i + 1]
                i += 1
            else:
                value = True
        variables[key.replace("-", "_")] = value
        i += 1
    return variables


def _configure_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
    )


async def _run_prompt(args: argparse.Namespace, variables: Dict[str, Any]) -> int:
    config = ReskillConfig().with_env_overrides()
    models = args.models or config.ai.models

    runner = PromptRunner(invoker=ModelInvoker(command_template=config.ai.command))
    request = PromptRequest(
        template_name=args.prompt_name,
        variables={**config.template_variables(), **variables},
        models=models,
        interactive=args.interactive,
    )
    await runner.run(request)
    return 0


def _run_index(args: argparse.Namespace) -> int:
    updated = update_context_files(args.skills_dir, args.context_files)
    console.print(f"  [green]✓[/] Updated {len(updated)} context file(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reskill",
        description="Reskill - keep skill playbooks in sync with the code they describe",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    prompt_parser = subparsers.add_parser(
        "prompt",
        help="Run an AI prompt against the codebase",
        epilog="Any other --key value flags are passed to the template as variables.",
    )
    prompt_parser.add_argument(
        "prompt_name", help="Name of the markdown prompt template (e.g. agents/auditor)"
    )
    prompt_parser.add_argument(
        "--models",
        default=None,
        help="Comma-separated list of models to rotate through",
    )
    prompt_parser.add_argument(
        "--interactive",
        action="store_true",
        help="Keep the conversation going after the first answer",
    )

    index_parser = subparsers.add_parser(
        "index", help="Write the skill index into project context files"
    )
    index_parser.add_argument("--skills-dir", required=True, help="Directory of skill folders")
    index_parser.add_argument(
        "--context-file",
        dest="context_files",
        action="append",
        required=True,
        help="Context file to update (repeatable)",
    )
    return parser


def main(argv: List[str] | None = None) -> int:
    """Entry point for the reskill CLI."""
    load_all_dotenv()
    parser = build_parser()
    args, extra = parser.parse_known_args(argv)
    _configure_logging(args.debug)

    try:
        if args.command == "prompt":
            try:
                variables = parse_template_variables(extra)
            except ValueError as e:
                parser.error(str(e))
            return asyncio.run(_run_prompt(args, variables))

        if extra:
            parser.error(f"unrecognized arguments: {' '.join(extra)}")
        return _run_index(args)
    except PromptExecutionError as e:
        console.print(f"  [bold red]Error:[/] {escape(str(e))}")
        return e.exit_code
    except ReskillError as e:
        console.print(f"  [bold red]Error:[/] {escape(str(e))}")
        return 1
    except ValidationError as e:
        console.print(f"  [bold red]Invalid request:[/] {escape(str(e))}")
        return 2
    except KeyboardInterrupt:
        console.print("\n[dim]Exiting reskill...[/]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
