"""Invoke tasks for Panoptes development.

Every task shells out to `uv` so the virtual environment stays in sync with
`pyproject.toml`. `invoke models` pulls the default Ollama models.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from pathlib import Path

from invoke import Collection, Context, task

PROJECT_ROOT = Path(__file__).parent
DEFAULT_MODELS = ("moondream", "llama3.2:3b", "deepseek-coder:1.3b")


def _uv(ctx: Context, args: Sequence[str], *, pty: bool = True) -> None:
    """Run `uv` with the given arguments from the project root."""
    with ctx.cd(str(PROJECT_ROOT)):
        ctx.run(shlex.join(("uv", *args)), echo=True, pty=pty)


@task
def sync(ctx: Context, dev: bool = True) -> None:
    """Install the project and, by default, the development extras."""
    args = ["sync"]
    if dev:
        args.extend(["--extra", "dev"])
    _uv(ctx, args)


@task
def build(ctx: Context) -> None:
    """Build sdist and wheel into `dist/`."""
    _uv(ctx, ["build"])


@task(help={"k": "pytest -k expression.", "options": "Extra flags passed to pytest."})
def tests(ctx: Context, k: str = "", options: str = "") -> None:
    """Run the test suite."""
    args = ["run", "pytest"]
    if k:
        args.extend(["-k", k])
    if options:
        args.extend(shlex.split(options))
    _uv(ctx, args)


@task(help={"fix": "Let ruff apply fixes."})
def lint(ctx: Context, fix: bool = False) -> None:
    """Check formatting and lint rules with ruff."""
    _uv(ctx, ["run", "ruff", "format", "--check", "src", "tests"])
    args = ["run", "ruff", "check", "src", "tests"]
    if fix:
        args.append("--fix")
    _uv(ctx, args)


@task
def mypy(ctx: Context) -> None:
    """Type-check the package."""
    _uv(ctx, ["run", "mypy", "src"])


@task
def ci(ctx: Context) -> None:
    """Run lint, type checks and tests in the order CI does."""
    ctx.invoke(lint)
    ctx.invoke(mypy)
    ctx.invoke(tests)


@task(
    help={"model": "Model to pull; repeat for several. Defaults to the configured set."},
    iterable=["model"],
)
def models(ctx: Context, model: list[str]) -> None:
    """Pull the Ollama models Panoptes uses by default."""
    for name in model or DEFAULT_MODELS:
        ctx.run(shlex.join(("ollama", "pull", name)), echo=True, pty=True)


namespace = Collection(sync, build, tests, lint, mypy, ci, models)
