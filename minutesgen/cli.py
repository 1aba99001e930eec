"""
minutesgen.cli - Typer CLI entry point.

Drives the audio preparation core from a terminal: provision binaries,
probe and split media files, and exercise the chunked transfer path.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from minutesgen import __version__
from minutesgen.config import MinutesGenConfig, load_config
from minutesgen.exceptions import ConfigError
from minutesgen.io import write_json
from minutesgen.logging import configure_logging
from minutesgen.processor import NativeAudioProcessor
from minutesgen.progress import ProgressEvent
from minutesgen.transfer.chunked import iter_chunks
from minutesgen.utils import format_bytes, format_duration

app = typer.Typer(
    name="minutesgen",
    help="Audio preparation for cloud transcription.\n\n"
    "Provisions FFmpeg, splits long recordings into bounded WAV segments, "
    "and moves large files across size-limited channels in chunks.",
    add_completion=False,
)
console = Console()

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to a config.yaml")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"minutesgen {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """minutesgen - audio preparation for cloud transcription."""
    configure_logging(verbose)


def _load(config_file: Path | None) -> MinutesGenConfig:
    try:
        return load_config(config_file)
    except (FileNotFoundError, ConfigError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _initialized(config: MinutesGenConfig) -> NativeAudioProcessor:
    processor = NativeAudioProcessor(config)
    result = processor.initialize()
    if not result["success"]:
        console.print(f"[red]Error: {result['error']}[/red]")
        raise typer.Exit(1)
    return processor


def _print_progress(event: ProgressEvent) -> None:
    console.print(f"[dim]  {event.percentage:5.1f}%  {event.current_task}[/dim]")


@app.command("provision")
def provision(config_file: Path | None = CONFIG_OPTION) -> None:
    """Deploy FFmpeg/FFprobe to the fixed bin directory and verify them."""
    config = _load(config_file)
    processor = _initialized(config)
    location = processor.provisioner.paths

    table = Table(title="Binaries")
    table.add_column("Binary", style="cyan")
    table.add_column("Path", style="green")
    table.add_column("Strategy", style="yellow")
    for label, path in (("decoder", location.decoder_path), ("prober", location.prober_path)):
        table.add_row(label, str(path), processor.runner.verified_strategy(path) or "-")
    console.print(table)
    console.print(f"[green]✓[/green] Binaries {location.state.value}")


@app.command("probe")
def probe(
    media: Path = typer.Argument(..., help="Audio or video file"),
    config_file: Path | None = CONFIG_OPTION,
) -> None:
    """Show the duration and format of a media file."""
    config = _load(config_file)
    processor = _initialized(config)
    try:
        result = processor.probe.probe(media)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    fmt = result.format_metadata
    console.print(f"[cyan]{media.name}[/cyan]")
    console.print(f"  Duration:    {format_duration(result.duration_seconds)} ({result.duration_seconds:.2f}s)")
    console.print(f"  Format:      {fmt.get('format_name', '-')}")
    console.print(f"  Sample rate: {result.sample_rate or '-'}")


@app.command("split")
def split(
    media: Path = typer.Argument(..., help="Audio or video file to split"),
    segment_duration: float | None = typer.Option(
        None, "--segment-duration", "-d", help="Window length in seconds"
    ),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Concurrent decoder processes"),
    manifest: Path | None = typer.Option(
        None, "--manifest", "-m", help="Write the segment list as JSON"
    ),
    config_file: Path | None = CONFIG_OPTION,
) -> None:
    """Split a media file into bounded WAV segments."""
    config = _load(config_file)
    if workers is not None:
        config = config.model_copy(update={"max_workers": max(1, workers)})
    processor = _initialized(config)

    result = processor.process_file(media, segment_duration, on_progress=_print_progress)
    if not result["success"]:
        console.print(f"[red]Error: {result['error']}[/red]")
        raise typer.Exit(1)

    table = Table(title="Segments")
    table.add_column("#", style="cyan")
    table.add_column("Start", style="green")
    table.add_column("End", style="green")
    table.add_column("File", style="yellow")
    for i, segment in enumerate(result["segments"], start=1):
        table.add_row(
            str(i),
            format_duration(segment["startTime"]),
            format_duration(segment["endTime"]),
            segment["filePath"],
        )
    console.print(table)

    if manifest is not None:
        write_json(manifest, {"source": str(media), "segments": result["segments"]})
        console.print(f"[dim]  Manifest written to {manifest}[/dim]")

    console.print(f"\n[green]✓[/green] Created {len(result['segments'])} segment(s)")


@app.command("transfer")
def transfer(
    source: Path = typer.Argument(..., help="File to move through the chunked channel"),
    config_file: Path | None = CONFIG_OPTION,
) -> None:
    """Send a file through the chunked transfer protocol and reassemble it."""
    config = _load(config_file)
    if not source.is_file():
        console.print(f"[red]Error: File not found: {source}[/red]")
        raise typer.Exit(1)

    processor = NativeAudioProcessor(config)
    size = source.stat().st_size
    started = processor.start_chunked_upload(source.name, size)
    if not started["success"]:
        console.print(f"[red]Error: {started['error']}[/red]")
        raise typer.Exit(1)
    session_id = started["sessionId"]

    for index, data in iter_chunks(source, config.chunk_size_bytes):
        uploaded = processor.upload_chunk(session_id, index, data)
        if not uploaded["success"]:
            processor.cleanup_chunked_upload(session_id)
            console.print(f"[red]Error: {uploaded['error']}[/red]")
            raise typer.Exit(1)
        console.print(f"[dim]  Chunk {index + 1}/{started['expectedChunks']} sent[/dim]")

    final = processor.finalize_chunked_upload(session_id)
    if not final["success"]:
        processor.cleanup_chunked_upload(session_id)
        console.print(f"[red]Error: {final['error']}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] Reassembled {format_bytes(final['fileSize'])} "
        f"in {final['processingTime']}ms"
    )
    console.print(f"[dim]  {final['tempPath']}[/dim]")


@app.command("cleanup")
def cleanup(config_file: Path | None = CONFIG_OPTION) -> None:
    """Remove all temporary segments and transfer sessions."""
    config = _load(config_file)
    NativeAudioProcessor(config).cleanup()
    console.print(f"[green]✓[/green] Removed {config.temp_dir}")


if __name__ == "__main__":
    app()
