"""Access controller CLI (acctl).

Usage:
    acctl validate ./specs          # Validate declarations
    acctl id encode Admin u-123     # Build a role assignment id
    acctl id decode Admin#u-123     # Split a role assignment id
    acctl dev test -k promises      # Run tests
    acctl dev lint --fix            # Lint code
"""

from __future__ import annotations

import subprocess
import sys
from collections import Counter
from pathlib import Path

import click

from . import identifiers
from .errors import DeclarationValidationError
from .spec_loader import SpecLoadError, load_declarations

# Paths checked by the dev commands, relative to the project root
CODE_PATHS = ("src", "tests")

# Upper bound for one dev subprocess (seconds)
DEV_COMMAND_TIMEOUT_SECONDS = 600


def _project_root() -> Path:
    here = Path(__file__).resolve()
    return next((p for p in here.parents if (p / "pyproject.toml").is_file()), Path.cwd())


def _run_tool(module: str, *args: str) -> None:
    """Run ``python -m module args`` in the project root."""
    cmd = [sys.executable, "-m", module, *args]
    try:
        subprocess.run(
            cmd, cwd=_project_root(), timeout=DEV_COMMAND_TIMEOUT_SECONDS, check=True
        )
    except subprocess.CalledProcessError as e:
        raise click.ClickException(f"{module} exited with status {e.returncode}") from e
    except subprocess.TimeoutExpired as e:
        raise click.ClickException(
            f"{module} did not finish within {DEV_COMMAND_TIMEOUT_SECONDS}s"
        ) from e
    except FileNotFoundError as e:
        raise click.ClickException(f"Interpreter not found: {sys.executable}") from e


@click.group()
@click.version_option(version="0.1.0", prog_name="acctl")
def cli() -> None:
    """Access controller CLI (acctl).

    Validate access declarations and work with role assignment ids.
    """


@cli.command()
@click.argument(
    "specs_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default="./specs",
    envvar="SPECS_DIR",
)
def validate(specs_dir: Path) -> None:
    """Load and validate every declaration in SPECS_DIR. No remote calls."""
    try:
        declarations = load_declarations(specs_dir)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e

    for declaration in declarations:
        click.echo(f"  {declaration.kind:<22} {declaration.name}  ({declaration.source.name})")

    kinds = Counter(d.kind for d in declarations)
    summary = ", ".join(f"{count} {kind}" for kind, count in sorted(kinds.items()))
    click.secho(f"✓ {len(declarations)} declarations valid ({summary or 'none'})", fg="green")


@cli.group("id")
def id_group() -> None:
    """Encode and decode role assignment ids."""


@id_group.command("encode")
@click.argument("role")
@click.argument("user")
def id_encode(role: str, user: str) -> None:
    """Print the id of the assignment of ROLE to USER."""
    try:
        click.echo(identifiers.encode(role, user))
    except DeclarationValidationError as e:
        raise click.ClickException("; ".join(e.errors)) from e


@id_group.command("decode")
@click.argument("identifier")
def id_decode(identifier: str) -> None:
    """Print the role, role id and user of IDENTIFIER."""
    try:
        role, user = identifiers.decode(identifier)
    except DeclarationValidationError as e:
        raise click.ClickException("; ".join(e.errors)) from e

    click.echo(f"role:    {role}")
    click.echo(f"role_id: {identifiers.role_id(role)}")
    click.echo(f"user:    {user}")


@cli.group()
def dev() -> None:
    """Test and lint helpers for working on the controller."""


@dev.command("test")
@click.option("--html", is_flag=True, help="Write an HTML coverage report to htmlcov/")
@click.option("--match", "-k", "match", metavar="EXPR", help="Only run tests matching EXPR")
@click.option("--quiet", "-q", is_flag=True, help="Less pytest output")
def dev_test(html: bool, match: str | None, quiet: bool) -> None:
    """Run the test suite with coverage."""
    args = ["tests", "--cov=access_controller"]
    args.append("--cov-report=html" if html else "--cov-report=term-missing")
    if quiet:
        args.append("-q")
    if match:
        args += ["-k", match]
    _run_tool("pytest", *args)


@dev.command("lint")
@click.option("--fix", is_flag=True, help="Apply safe ruff fixes")
def dev_lint(fix: bool) -> None:
    """Run ruff checks and the formatter in check mode."""
    _run_tool("ruff", "check", *CODE_PATHS, *(["--fix"] if fix else []))
    _run_tool("ruff", "format", "--check", *CODE_PATHS)
    click.secho("✓ ruff clean", fg="green")


if __name__ == "__main__":
    cli()
