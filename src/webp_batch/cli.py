from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import AppConfig, dump_config
from .core import WebPConverter
from .errors import ConversionError
from .models import BatchReport, ConversionOptions, ConversionOutcome
from .settings import load_effective_config
from .utils import atomic_write

console = Console()

app = typer.Typer(help="Batch convert PNG/JPEG images to WebP")


def _load_config(path: Path | None) -> AppConfig:
    try:
        return load_effective_config(path)
    except ValueError as exc:
        console.print(f"[red]Invalid configuration[/red]: {escape(str(exc))}")
        raise typer.Exit(1) from exc


def _announce_encoder(converter: WebPConverter) -> None:
    if converter.probe_availability():
        console.print("[green]✓ Using cwebp (Google WebP tools)[/green]")
    elif converter.config.encoder.prefer == "pillow":
        console.print("[yellow]Using Pillow (configured)[/yellow]")
    elif converter.config.encoder.prefer == "cwebp":
        console.print("[red]✗ cwebp not found and Pillow fallback is disabled[/red]")
    else:
        console.print("[yellow]⚠ cwebp not found, falling back to Pillow[/yellow]")


def _print_found(total: int) -> None:
    console.print(f"[blue]Found {total} images[/blue]")


def _print_progress(outcome: ConversionOutcome, done: int, total: int) -> None:
    name = escape(outcome.source.name)
    if outcome.success:
        console.print(f"[green]✓[/green] ({done}/{total}) {name}")
    else:
        console.print(f"[red]✗[/red] ({done}/{total}) {name}: {escape(outcome.error or '')}")


def _summary_table(report: BatchReport) -> Table:
    table = Table(title="Conversion report")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Converted", f"{len(report.converted)} files")
    table.add_row("Skipped", f"{len(report.skipped)} files")
    table.add_row("Errors", f"{len(report.errors)} files")
    table.add_row("Original size", f"{round(report.original_kb)} KB")
    table.add_row("WebP size", f"{round(report.webp_kb)} KB")
    table.add_row("Space saved", f"{report.savings}%")
    return table


@app.command()
def convert(
    src: Path = typer.Option(Path("."), "--src", help="Source directory to scan for images"),
    quality: int | None = typer.Option(None, "--quality", min=0, max=100, help="WebP quality (0-100)"),
    lossless: bool | None = typer.Option(None, "--lossless/--lossy", help="Use lossless encoding"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace original files"),
    threads: int | None = typer.Option(None, "--threads", min=1, help="Number of concurrent conversions"),
    preserve_meta: bool | None = typer.Option(
        None, "--preserve-meta/--strip-meta", help="Preserve EXIF and ICC metadata"
    ),
    flat: Path | None = typer.Option(None, "--flat", help="Write every WebP file into this directory"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
    report_file: Path | None = typer.Option(None, "--report-file", help="Also write the JSON report here"),
) -> None:
    cfg = _load_config(config)
    defaults = cfg.defaults
    options = ConversionOptions(
        src=src,
        quality=defaults.quality if quality is None else quality,
        lossless=defaults.lossless if lossless is None else lossless,
        overwrite=overwrite,
        threads=threads or defaults.effective_threads,
        preserve_metadata=defaults.preserve_metadata if preserve_meta is None else preserve_meta,
        flat=flat,
    )
    converter = WebPConverter(cfg)

    console.print("[bold blue]WebP Batch Converter[/bold blue]")
    console.print(f"[blue]Scanning {escape(str(options.src))} with {options.threads} threads...[/blue]")
    try:
        _announce_encoder(converter)
        report = converter.batch_convert(options, progress=_print_progress, discovered=_print_found)
    except ConversionError as exc:
        console.print(f"[red]Fatal error[/red]: {exc.code} - {escape(str(exc))}")
        raise typer.Exit(1) from exc

    console.print(_summary_table(report))
    for warning in report.warnings:
        console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")
    payload = report.to_dict()
    console.print_json(data=payload)
    if report_file is not None:
        atomic_write(report_file, json.dumps(payload, indent=2))
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def probe(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    converter = WebPConverter(_load_config(config))
    _announce_encoder(converter)
    console.print(f"Encoder availability: {converter.availability.value}")


@app.command("show-config")
def show_config(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    typer.echo(dump_config(_load_config(config)))


@app.command()
def serve(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", min=1, max=65535, help="Bind port"),
) -> None:
    import uvicorn

    from .api import create_app

    cfg = _load_config(config)
    application = create_app(config, require_enabled=False)
    uvicorn.run(application, host=host or cfg.api.host, port=port or cfg.api.port)


if __name__ == "__main__":
    app()
