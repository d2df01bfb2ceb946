"""Command line entry point.

Usage:
    python -m rentalfiles upload Tenant 42 photo.png
    python -m rentalfiles upload Tenant 42 lease.pdf --document-type Agreement
    python -m rentalfiles replace Tenant 42 photo.png --old-file-id 7
    python -m rentalfiles list Tenant 42 --category TenantDocument
    python -m rentalfiles latest Tenant 42
    python -m rentalfiles delete 7

    Or via the console script:
    rentalfiles upload Tenant 42 photo.png

Environment variables:
    RENTALFILES_API_URL: Metadata service URL (required)
    RENTALFILES_API_TOKEN: Bearer token (required)
    See ClientConfig for optional settings.
"""

import argparse
import asyncio
import json
import logging
import sys

from .client import FilesApiClient
from .config import ClientConfig
from .errors import RentalFilesError
from .models import (
    DocumentType,
    EntityType,
    FileCategory,
    FileSlot,
    UploadFile,
    category_for_entity,
    format_file_size,
)
from .pipeline import ReplaceOrchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rentalfiles",
        description="Upload and manage entity files through the metadata service.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    def add_entity(p: argparse.ArgumentParser) -> None:
        p.add_argument("entity_type", choices=[e.value for e in EntityType])
        p.add_argument("entity_id", type=int)

    def add_category(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--category",
            choices=[c.value for c in FileCategory],
            help="File category (default: the entity's image category)",
        )

    for name in ("upload", "replace"):
        p = commands.add_parser(name, help=f"{name.capitalize()} a file")
        add_entity(p)
        p.add_argument("path", help="Local file to upload")
        add_category(p)
        p.add_argument("--document-type", choices=[d.value for d in DocumentType])
        p.add_argument("--content-type", help="MIME type (default: from extension)")
        if name == "replace":
            p.add_argument("--old-file-id", type=int, help="File to delete afterwards")

    p = commands.add_parser("list", help="List an entity's files")
    add_entity(p)
    add_category(p)

    p = commands.add_parser("latest", help="Show an entity's latest file")
    add_entity(p)
    add_category(p)

    p = commands.add_parser("delete", help="Delete a file")
    p.add_argument("file_id", type=int)

    return parser


def resolve_category(args: argparse.Namespace) -> FileCategory:
    """Pick the category from --category, --document-type, or the entity."""
    if args.category:
        return FileCategory(args.category)
    if getattr(args, "document_type", None):
        return FileCategory.TENANT_DOCUMENT
    return category_for_entity(args.entity_type)


def _print_progress(percent: float) -> None:
    sys.stderr.write(f"\rUploading: {percent:5.1f}%")
    if percent >= 100:
        sys.stderr.write("\n")
    sys.stderr.flush()


async def run(args: argparse.Namespace, config: ClientConfig) -> None:
    """Execute one command."""
    if args.command in ("upload", "replace"):
        slot = FileSlot(
            entity_type=args.entity_type,
            entity_id=args.entity_id,
            file_category=resolve_category(args),
            document_type=args.document_type,
        )
        file = UploadFile.from_path(args.path, args.content_type)
        async with ReplaceOrchestrator.from_config(config) as orchestrator:
            if args.command == "upload":
                record = await orchestrator.pipeline.upload(
                    slot, file, on_progress=_print_progress
                )
            else:
                record = await orchestrator.replace(
                    slot, file, args.old_file_id, on_progress=_print_progress
                )
        print(record.model_dump_json(by_alias=True, indent=2))
        return

    async with FilesApiClient(
        api_url=config.base_url, api_token=config.api_token, timeout=config.timeout
    ) as client:
        if args.command == "list":
            file_set = await client.list_entity_files(
                args.entity_type, args.entity_id, args.category
            )
            for record in file_set.files:
                print(
                    f"{record.id}\t{record.file_category.value}\t"
                    f"{record.file_name}\t{format_file_size(record.file_size_bytes)}\t"
                    f"{record.public_url}"
                )
            print(
                f"{file_set.total_count} file(s), "
                f"{format_file_size(file_set.total_size_bytes)}"
            )
        elif args.command == "latest":
            latest = await client.get_latest_file(
                args.entity_type, args.entity_id, resolve_category(args)
            )
            if latest is None:
                print("No file yet")
            else:
                print(latest.model_dump_json(by_alias=True, indent=2))
        elif args.command == "delete":
            deleted = await client.delete_file(args.file_id)
            print(json.dumps({"fileId": args.file_id, "deleted": deleted}))


def main(argv: list[str] | None = None) -> None:
    """Run the rentalfiles command line."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # Suppress httpx request logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    try:
        config = ClientConfig()  # type: ignore[call-arg]  # pydantic-settings loads from env
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        logger.error(
            "Required environment variables: RENTALFILES_API_URL, RENTALFILES_API_TOKEN"
        )
        sys.exit(1)

    try:
        asyncio.run(run(args, config))
    except (RentalFilesError, OSError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
