#!/usr/bin/env python

# src/chunk_egress/cli.py

import argparse
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .app import create_output
from .chunks import FileChunk
from .config import get_config
from .exceptions import ChunkEgressError, ConfigurationError, get_error_context
from .schemas import ChunkMetadata

console = Console()


def _fail(title: str, message: str, exit_code: int) -> int:
    console.print("\n[bold red]❌ CHUNK EGRESS FAILED[/bold red]\n")
    console.print(Panel(message, title=title, border_style="red"))
    return exit_code


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chunk-egress",
        description="Upload buffered chunks to object storage with collision-free keys.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "check",
        help="Validate the configuration and make sure the container exists.",
    )

    upload = subparsers.add_parser("upload", help="Upload local files, one chunk per file.")
    upload.add_argument("files", nargs="+", help="Files to upload.")
    upload.add_argument("--tag", help="Tag attached to every chunk.")
    upload.add_argument(
        "--timekey",
        type=int,
        help="Time bucket (epoch seconds) of the chunks. Defaults to the flush time.",
    )
    return parser


def _run_check() -> int:
    config = get_config()
    output = create_output(config)
    table = Table(title="Chunk egress configuration", show_header=False)
    table.add_row("Container", config.container)
    table.add_row("Key format", config.object_key_format)
    table.add_row("Store as", f"{output.mode.name} ({output.mode.mime_type})")
    table.add_row("Overwrite", str(config.overwrite))
    console.print(table)
    console.print("[bold green]✅ Configuration is valid.[/bold green]")
    return 0


def _run_upload(args: argparse.Namespace) -> int:
    output = create_output(get_config())
    metadata = ChunkMetadata(timekey=args.timekey, tag=args.tag)

    table = Table(title="Uploaded chunks")
    table.add_column("File")
    table.add_column("Key")
    table.add_column("Attempts", justify="right")
    table.add_column("Overwritten")

    for path in args.files:
        resolved = output.write(FileChunk(path, metadata=metadata))
        table.add_row(
            path,
            resolved.key,
            str(resolved.attempts),
            "[yellow]yes[/yellow]" if resolved.overwritten else "no",
        )
        console.log(f"[green]✓[/green] {path} -> {resolved.key}")

    console.print(table)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the chunk egress command line."""
    args = _build_parser().parse_args(argv)

    try:
        if args.command == "check":
            return _run_check()
        return _run_upload(args)
    except ConfigurationError as e:
        return _fail("Configuration Error", e.message, 2)
    except ChunkEgressError as e:
        context = get_error_context(e)
        return _fail(
            "Upload Error",
            f"{e.message}\n\nerror_code: {context['error_code']}\nretryable: {context['retryable']}",
            1,
        )
    except OSError as e:
        return _fail("Input Error", str(e), 2)


if __name__ == "__main__":
    sys.exit(main())
