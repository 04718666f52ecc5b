from __future__ import annotations

import argparse
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console

from .core.config import get_settings
from .core.logging import configure_logging
from .ingest.encoder import binary_version
from .ingest.errors import IngestError
from .ingest.formats import classify
from .ingest.manifest_schema import SchemaPath, export_schema
from .ingest.pipeline import MediaPipeline

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Keepsake media ingest developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    classify_parser = subparsers.add_parser("classify", help="Print the media kind for a filename")
    classify_parser.add_argument("--file", required=True, help="Filename or path to classify")
    classify_parser.set_defaults(func=_cmd_classify)

    ingest_parser = subparsers.add_parser("ingest", help="Store a file with its derivatives and print the manifest")
    ingest_parser.add_argument("--file", required=True, help="Path to the source media file")
    ingest_parser.add_argument("--owner", required=True, type=int, help="Owner id used in the storage layout")
    ingest_parser.add_argument(
        "--taken-at",
        type=datetime.fromisoformat,
        default=None,
        help="Capture timestamp in ISO 8601 form (defaults to now).",
    )
    ingest_parser.add_argument(
        "--media-root",
        default=None,
        help="Root directory for stored media (defaults to KEEPSAKE_MEDIA_ROOT).",
    )
    ingest_parser.set_defaults(func=_cmd_ingest)

    schema_parser = subparsers.add_parser("schema", help="Write the manifest JSON schema")
    schema_parser.add_argument("--out", default=str(SchemaPath), help="Destination for the schema file")
    schema_parser.set_defaults(func=_cmd_schema)
    return parser


def _cmd_classify(args: argparse.Namespace) -> None:
    console.print(classify(args.file).value)


def _cmd_ingest(args: argparse.Namespace) -> None:
    """Run the pipeline on a local file and print the manifest.

    Args:
        args: The command-line arguments.
    """
    media_path = Path(args.file).expanduser().resolve()
    if not media_path.exists():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)

    settings = get_settings()
    if args.media_root:
        settings = settings.model_copy(update={"media_root": Path(args.media_root).expanduser().resolve()})
    configure_logging(settings.log_level, environment=settings.environment)

    pipeline = MediaPipeline(settings)
    try:
        variants = pipeline.ingest(media_path.read_bytes(), media_path.name, args.owner, args.taken_at)
    except IngestError as exc:
        console.print(f"[red]Ingest failed:[/] {exc}")
        sys.exit(3)
    finally:
        pipeline.close()

    console.print_json(data=variants.to_manifest())
    console.print(f"[green]Stored under {settings.media_root}[/]")


def _cmd_schema(args: argparse.Namespace) -> None:
    path = export_schema(Path(args.out).expanduser())
    console.print(f"[dim]Schema written to {path}[/]")


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    checks = {
        settings.encoder_binary: [settings.encoder_binary, "-version"],
        settings.probe_binary: [settings.probe_binary, "-version"],
    }
    results = {}
    for label, cmd in checks.items():
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
            results[label] = True
        except (OSError, subprocess.CalledProcessError):
            results[label] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        version = f" [dim]{binary_version((label, '-version'))}[/]" if ok else ""
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}{version}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg and ffprobe.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
