from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_config, RuntimeConfig
from .engine import Engine, ExtractRequest, TransformRequest
from .render import workspace_tree


app = typer.Typer(add_completion=False, no_args_is_help=True, help="sqlblocks CLI")
console = Console()
err_console = Console(stderr=True)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def version_callback(value: bool):
    from . import __version__

    if value:
        console.print(f"sqlblocks {__version__}")
        raise typer.Exit()


def _setup_logging(level_name: str) -> None:
    level = LOG_LEVELS.get((level_name or "info").lower(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Path to sqlblocks.yml"),
    log_level: Optional[str] = typer.Option(None, help="log level: debug|info|warn|error"),
    format: Optional[str] = typer.Option(None, help="output format: text|json"),
    version: bool = typer.Option(False, "--version", callback=version_callback, is_eager=True, help="Show version and exit"),
):
    ctx.ensure_object(dict)
    cfg = load_config(config)
    # CLI flags take precedence over the config file
    if log_level:
        cfg.log_level = log_level
    if format:
        cfg.output_format = format
    _setup_logging(cfg.log_level)
    ctx.obj["cfg"] = cfg


@app.command()
def transform(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help=".sql source or .json provider payload"),
    object_type: Optional[str] = typer.Option(
        None, help="check_constraint|column_default|rls_policy|view_definition"
    ),
    adapter: Optional[str] = typer.Option(None),
    out: Optional[Path] = typer.Option(None, dir_okay=False, help="Write workspace JSON here"),
):
    cfg: RuntimeConfig = ctx.obj["cfg"]
    engine = Engine(cfg)
    req = TransformRequest(path=file, adapter=adapter or cfg.default_adapter, object_type=object_type)
    try:
        workspace = engine.run_transform(req)
    except KeyError as e:
        err_console.print(f"[red]{e.args[0] if e.args else e}[/red]")
        raise typer.Exit(code=2)
    except (OSError, ValueError) as e:
        err_console.print(f"[red]failed to process {file}: {e}[/red]")
        raise typer.Exit(code=1)
    if out:
        _emit(workspace, "json", out)
    elif cfg.output_format == "json":
        _emit(workspace, "json")
    else:
        console.print(workspace_tree(workspace, title=file.name))


@app.command()
def extract(
    ctx: typer.Context,
    sql_dir: Optional[Path] = typer.Option(None, exists=True, file_okay=False),
    out_dir: Optional[Path] = typer.Option(None, file_okay=False),
    adapter: Optional[str] = typer.Option(None),
    include: Optional[List[str]] = typer.Option(None, help="Glob include pattern (repeatable)"),
    exclude: Optional[List[str]] = typer.Option(None, help="Glob exclude pattern (repeatable)"),
    fail_on_error: bool = typer.Option(False, help="Exit non-zero when any file fails"),
):
    cfg: RuntimeConfig = ctx.obj["cfg"]
    engine = Engine(cfg)
    req = ExtractRequest(
        sql_dir=sql_dir or Path(cfg.sql_dir),
        out_dir=out_dir or Path(cfg.out_dir),
        adapter=adapter or cfg.default_adapter,
        include=include or None,
        exclude=exclude or None,
        fail_on_error=fail_on_error,
    )
    try:
        result = engine.run_extract(req)
    except KeyError as e:
        err_console.print(f"[red]{e.args[0] if e.args else e}[/red]")
        raise typer.Exit(code=2)
    _emit(result, cfg.output_format)
    raise typer.Exit(code=result.get("exit_code", 0))


def _emit(payload: dict, fmt: str, out_path: Optional[Path] = None) -> None:
    if fmt == "json":
        text = json.dumps(payload, indent=2, ensure_ascii=False)
        if out_path:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(text, encoding="utf-8")
        else:
            sys.stdout.write(text + "\n")
        return

    if "rows" in payload and isinstance(payload["rows"], list):
        columns = payload.get("columns", [])
        table = Table(show_header=True)
        for k in columns:
            table.add_column(k)
        for r in payload["rows"]:
            cells = [str(r.get(c, "")) for c in columns] if isinstance(r, dict) else [str(v) for v in r]
            table.add_row(*cells)
        console.print(table)
        if payload.get("errors"):
            err_console.print(f"[yellow]{payload['errors']} file(s) failed[/yellow]")
    else:
        console.print(payload)


def entrypoint() -> None:
    app()


if __name__ == "__main__":
    entrypoint()
