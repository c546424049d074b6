"""CLI for monarch-grid -- inspect screen schemas and preview screens in the browser.

Usage::

    # Parse a schema file and show how it normalizes
    monarch-grid check-schema customer_list.json

    # Print the strict-JSON form of a relaxed-JSON schema
    monarch-grid strip customer_list.json > strict.json

    # Render a live screen against a backend
    monarch-grid view CUST_LIST --api-base http://erp.local:8080
"""

import json
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Annotated, Optional

import typer

from monarch_grid import relaxed_json
from monarch_grid.filters import normalize_filter_rows
from monarch_grid.layout import button_action
from monarch_grid.models import GroupUnit
from monarch_grid.schema import parse_schema

app = typer.Typer(
    name="monarch-grid",
    help="Inspect dynamic-grid screen schemas and preview screens in the browser.",
    no_args_is_help=True,
)


def _read_text(file: Path) -> str:
    if not file.exists():
        typer.echo(f"Error: file not found: {file}", err=True)
        raise typer.Exit(code=1)
    return file.read_text(encoding="utf-8-sig")


@app.command("check-schema")
def check_schema(
    file: Annotated[Path, typer.Argument(help="Schema file (JSON or relaxed JSON)")],
) -> None:
    """Parse a schema file and print its normalized shape.

    Exits with code 1 when the schema has no usable columns.
    """
    parsed = parse_schema(_read_text(file), screen_id=file.stem)
    schema = parsed.schema
    normalized = normalize_filter_rows(schema.filter_view)

    typer.echo(f"Title:    {schema.title or '-'}")
    typer.echo(f"Service:  {schema.service or '-'}/{schema.method or '-'}")
    typer.echo(f"Key:      {schema.key_name or '-'}   Order: {schema.order or '-'}")
    typer.echo(f"Layout:   {len(schema.colgroup)} column(s)")
    typer.echo(f"Columns ({len(schema.col_model)}):")
    for column in schema.col_model:
        flags = [name for name, on in (("mobile", column.mobile_imp), ("chip", column.chip)) if on]
        suffix = f" [{', '.join(flags)}]" if flags else ""
        typer.echo(f"  {column.field:<20} {column.type:<6} {column.label}{suffix}")

    typer.echo(f"Filter rows ({len(normalized.rows)}):")
    for row in normalized.rows:
        parts = []
        for unit in row.units:
            if isinstance(unit, GroupUnit):
                members = "|".join(item.field for item in unit.items)
                parts.append(f"group:{unit.group_name}({members})")
            else:
                parts.append(f"{unit.item.type}:{unit.item.field}")
        typer.echo(f"  {row.key}: {', '.join(parts) or '(empty)'}")
    if normalized.default_selections:
        typer.echo(f"Group defaults: {json.dumps(normalized.default_selections, ensure_ascii=False)}")

    typer.echo("Buttons: " + ", ".join(f"{b.label}({button_action(b)})" for b in schema.buttons))

    if parsed.warnings:
        typer.echo(f"Warnings ({len(parsed.warnings)}):")
        for warning in parsed.warnings:
            typer.echo(f"  - {warning}")

    if not schema.col_model:
        raise typer.Exit(code=1)


@app.command()
def strip(
    file: Annotated[Path, typer.Argument(help="Relaxed-JSON file")],
) -> None:
    """Print FILE with comments and trailing commas removed."""
    text = _read_text(file)
    try:
        relaxed_json.loads(text)
    except json.JSONDecodeError as exc:
        typer.echo(f"Error: {file} is not valid relaxed JSON: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(relaxed_json.to_strict_json(text), nl=False)


def _build_app_code(screen_id: str, api_base: str, title: str) -> str:
    """Generate the Reflex app module source code for one screen."""
    template = _APP_TEMPLATE
    template = template.replace("__SCREEN_ID__", json.dumps(screen_id))
    template = template.replace("__API_BASE__", json.dumps(api_base))
    template = template.replace("__TITLE__", json.dumps(title))
    return template


# ---------------------------------------------------------------------------
# App template -- uses __PLACEHOLDER__ tokens for dynamic parts.
# ---------------------------------------------------------------------------

_APP_TEMPLATE = '''"""Auto-generated viewer app for one dynamic-grid screen."""

import os

os.environ.setdefault("MONARCH_API_BASE_URL", __API_BASE__)

import reflex as rx

from monarch_grid import DynamicGridMixin, dynamic_grid


class ViewerState(DynamicGridMixin, rx.State):
    """Viewer state bound to a single screen."""


def index() -> rx.Component:
    return rx.box(
        rx.text(__TITLE__, size="1", color="var(--gray-9)", margin_bottom="0.5em"),
        dynamic_grid(ViewerState),
        rx.text(
            ViewerState.dg_selected_info,
            white_space="pre-wrap",
            font_family="monospace",
            size="1",
            margin_top="1em",
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=ViewerState.load_dg_screen(__SCREEN_ID__))
'''


@app.command()
def view(
    screen_id: Annotated[str, typer.Argument(help="Screen (structure) identifier to render")],
    api_base: Annotated[
        Optional[str], typer.Option("--api-base", "-a", help="Backend base URL (default: $MONARCH_API_BASE_URL)")
    ] = None,
    port: Annotated[int, typer.Option("--port", "-p", help="Port for the Reflex frontend")] = 3000,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Page caption")] = None,
) -> None:
    """Render SCREEN_ID in a temporary Reflex app."""
    api_base = api_base or os.environ.get("MONARCH_API_BASE_URL", "http://localhost:8080")
    if title is None:
        title = f"{screen_id} @ {api_base}"

    app_code = _build_app_code(screen_id, api_base, title)

    tmp_dir = Path(tempfile.mkdtemp(prefix="monarch_grid_viewer_"))
    app_name = "viewer_app"
    app_pkg = tmp_dir / app_name
    app_pkg.mkdir()
    (app_pkg / "__init__.py").write_text("")
    (app_pkg / f"{app_name}.py").write_text(app_code)
    (tmp_dir / "rxconfig.py").write_text(
        f'import reflex as rx\nconfig = rx.Config(app_name="{app_name}", frontend_port={port})\n'
    )

    typer.echo(f"Launching viewer for screen: {screen_id}")
    typer.echo(f"Backend: {api_base} | Port: {port}")

    os.chdir(tmp_dir)

    # reflex's CLI calls sys.exit() on completion, so init runs in a subprocess.
    typer.echo("Initializing Reflex project...")
    subprocess.run([sys.executable, "-m", "reflex", "init"], cwd=str(tmp_dir), check=True)

    typer.echo("Starting viewer...")
    os.execvp(sys.executable, [sys.executable, "-m", "reflex", "run"])


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
