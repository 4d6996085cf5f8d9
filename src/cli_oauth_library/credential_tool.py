# src/cli_oauth_library/credential_tool.py
"""
Inspect and refresh the OAuth credentials used by the CLI-backed providers.

    python -m cli_oauth_library.credential_tool status
    python -m cli_oauth_library.credential_tool refresh --provider qwen_code

`.env` in the current directory is loaded first, so QWEN_OAUTH_PATH /
GEMINI_CLI_OAUTH_PATH overrides placed there are honoured.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import colorlog
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .error_handler import CredentialLoadError, RefreshError
from .provider_factory import get_available_providers, get_provider_instance

console = Console()


def _setup_logging(verbose: bool) -> None:
    handler = colorlog.StreamHandler(sys.stderr)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    logger = logging.getLogger("cli_oauth_library")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.addHandler(handler)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def _format_expiry(seconds: Optional[int]) -> str:
    if seconds is None:
        return "-"
    if seconds <= 0:
        return f"expired {abs(seconds) // 60}m ago"
    hours, remainder = divmod(seconds, 3600)
    return f"{hours}h {remainder // 60}m"


def _providers(selected: Optional[str]) -> List[str]:
    return [selected] if selected else get_available_providers()


async def collect_status(selected: Optional[str] = None) -> List[Dict[str, Any]]:
    return [
        await get_provider_instance(name).describe_credentials()
        for name in _providers(selected)
    ]


def render_status(rows: List[Dict[str, Any]]) -> Table:
    table = Table(title="OAuth credentials")
    table.add_column("Provider", style="bold")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Expires in")
    for row in rows:
        if row["error"]:
            status = f"[red]{row['error']}[/red]"
        elif row["valid"]:
            status = "[green]valid[/green]"
        else:
            status = "[yellow]needs refresh[/yellow]"
        table.add_row(
            row["provider"],
            row["path"],
            status,
            _format_expiry(row["expires_in_seconds"]),
        )
    return table


async def refresh_providers(selected: Optional[str] = None) -> bool:
    """Runs ensure_ready() for each provider; returns False if any failed."""
    ok = True
    for name in _providers(selected):
        provider = get_provider_instance(name)
        with console.status(f"[bold green]Authenticating {provider.name}...", spinner="dots"):
            try:
                await provider.ensure_ready()
            except (CredentialLoadError, RefreshError) as e:
                console.print(f"[red]✗ {provider.name}:[/red] {e}")
                ok = False
                continue
        console.print(f"[green]✓ {provider.name}:[/green] access token ready")
    return ok


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="OAuth credential status for CLI-backed providers")
    parser.add_argument("command", choices=["status", "refresh"], help="Action to run.")
    parser.add_argument(
        "--provider",
        choices=get_available_providers(),
        help="Limit to a single provider.",
    )
    parser.add_argument("--verbose", action="store_true", help="Show library debug logs.")
    args = parser.parse_args(argv)

    load_dotenv(Path.cwd() / ".env")
    _setup_logging(args.verbose)

    if args.command == "status":
        console.print(render_status(asyncio.run(collect_status(args.provider))))
        return 0
    return 0 if asyncio.run(refresh_providers(args.provider)) else 1


if __name__ == "__main__":
    sys.exit(main())
