"""CLI for the dynamic grid demo app.

Commands::

    python -m monarch_demo.cli            # Run the Reflex demo app
    python -m monarch_demo.cli run        # Same as above
    python -m monarch_demo.cli screens    # List the bundled screens and their warnings

Run from the ``examples/monarch_demo`` directory.
"""

import os
from pathlib import Path

import typer

from monarch_grid import parse_schema

app = typer.Typer(
    name="demo",
    help="Schema-driven grid demo app with a mock ERP backend.",
    invoke_without_command=True,
)

DATA_DIR: Path = Path(__file__).resolve().parent / "data"


def _run_app() -> None:
    """Start the Reflex demo app."""
    app_dir = Path(__file__).resolve().parent.parent
    os.chdir(app_dir)

    from reflex.reflex import cli

    cli(["run"])


@app.callback(invoke_without_command=True)
def default(ctx: typer.Context) -> None:
    """Run the demo app (default when no subcommand is given)."""
    if ctx.invoked_subcommand is None:
        _run_app()


@app.command()
def run() -> None:
    """Run the Reflex demo app."""
    _run_app()


@app.command()
def screens() -> None:
    """List the bundled screen schemas, parsed the way the grid parses them."""
    for path in sorted(DATA_DIR.glob("*.jsonc")):
        parsed = parse_schema(path.read_text(encoding="utf-8"), screen_id=path.stem)
        schema = parsed.schema
        typer.echo(
            f"{path.stem}: {schema.title or '(untitled)'} "
            f"[{schema.service}/{schema.method}] "
            f"{len(schema.col_model)} columns, {len(schema.filter_items())} filters"
        )
        for warning in parsed.warnings:
            typer.echo(f"  warning: {warning}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
