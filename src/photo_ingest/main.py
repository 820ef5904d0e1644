"""Main module for the photo ingestion CLI."""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from . import __version__
from .core.config import PipelineSettings
from .core.exceptions import PhotoIngestError
from .core.factories import create_pipeline
from .core.logging_config import get_logger, set_debug_logging
from .core.models import BatchResult, IngestRequest, ProgressEvent, SourceReference

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2


class LoggingProgressListener:
    """Reports batch progress through the CLI logger."""

    def __init__(self) -> None:
        self._logger = get_logger("cli")

    def on_progress(self, event: ProgressEvent) -> None:
        self._logger.info(
            f"[{event.completed}/{event.total}] {event.current_item}: {event.outcome}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photo-ingest",
        description="Photo Ingest - fetch, resize, watermark, store and face-index event photos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a shared Drive folder into an event
  photo-ingest ingest --event-id 910245 --link https://drive.google.com/drive/folders/<id>

  # Ingest local files without the organizer's watermark
  photo-ingest ingest --event-id 42 --files a.jpg b.png --branding off

  # Only list what a link resolves to
  photo-ingest list --link https://drive.google.com/file/d/<id>/view

  # Show version
  photo-ingest version
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest a batch of photos into an event")
    ingest_parser.add_argument("--event-id", required=True, help="Target event id")
    source = ingest_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--link", help="Shareable Google Drive file or folder link")
    source.add_argument("--files", nargs="+", metavar="PATH", help="Local image files")
    ingest_parser.add_argument(
        "--branding",
        choices=["on", "off"],
        default=None,
        help="Force the organizer watermark on or off (default: organizer setting)",
    )
    ingest_parser.add_argument(
        "--concurrency", type=int, default=None, help="Items processed simultaneously"
    )
    ingest_parser.add_argument(
        "--skip-faces", action="store_true", help="Store photos without face indexing"
    )
    ingest_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    list_parser = subparsers.add_parser("list", help="List the files a link resolves to")
    list_parser.add_argument("--link", required=True, help="Shareable Google Drive link")
    list_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers.add_parser("version", help="Show version information")
    return parser


async def run_ingest(
    settings: PipelineSettings,
    request: IngestRequest,
    concurrency: Optional[int] = None,
    index_faces: bool = True,
) -> BatchResult:
    async with create_pipeline(settings, concurrency=concurrency, index_faces=index_faces) as service:
        service.orchestrator.add_listener(LoggingProgressListener())
        return await service.ingest(request)


async def run_list(settings: PipelineSettings, link: str) -> List[SourceReference]:
    async with create_pipeline(settings, index_faces=False) as service:
        return await service.list_only(link)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the ``photo-ingest`` command.

    Exit codes: 0 when every item was stored or skipped, 2 when some items
    failed, 1 when the batch could not run at all.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "version":
        print("Photo Ingest CLI")
        print(f"Version {__version__}")
        print("Event photo ingestion with watermarking and face indexing")
        sys.exit(EXIT_OK)

    if args.command not in ("ingest", "list"):
        parser.print_help()
        sys.exit(EXIT_ERROR)

    logger = get_logger("cli")
    if args.debug:
        set_debug_logging()

    try:
        settings = PipelineSettings.from_env()
        if args.command == "list":
            references = asyncio.run(run_list(settings, args.link))
            print(json.dumps([ref.model_dump() for ref in references], indent=2))
            sys.exit(EXIT_OK)

        branding_override = None if args.branding is None else args.branding == "on"
        request = IngestRequest(
            event_id=args.event_id,
            link=args.link,
            files=args.files or [],
            branding_override=branding_override,
        )
        logger.info(f"Starting ingestion for event {request.event_id}")
        result = asyncio.run(
            run_ingest(
                settings,
                request,
                concurrency=args.concurrency,
                index_faces=not args.skip_faces,
            )
        )
    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user.")
        sys.exit(EXIT_ERROR)
    except PhotoIngestError as e:
        logger.error(f"Ingestion failed: {e}")
        sys.exit(EXIT_ERROR)

    print(result.model_dump_json(indent=2))
    sys.exit(EXIT_PARTIAL if result.failure_count else EXIT_OK)


if __name__ == "__main__":
    main()
