#!/usr/bin/env python3
"""
Meme EXIF: CLI app to stamp meme images with their title, description and tags.

Reads a tags.bson / memes.bson export, reconciles it with a folder of images and embeds
the provenance directly into each JPEG:
 - EXIF:ImageDescription: "<title> <description>"
 - EXIF:XPTitle / EXIF:XPKeywords: Windows wide-string title and ';'-separated tags

Existing metadata of every stamped image is replaced. Records that cannot be matched
(unknown tags, unsupported extensions, missing files) are listed in error_logs.txt.

Requirements:
 - Exiftool installed and available in PATH.

"""

import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter, validators
from loguru import logger
from pydantic import BaseModel, Field

from meme_exif.config import (
    DEFAULT_ERROR_LOG,
    DEFAULT_IMAGES_DIR,
    DEFAULT_LOG_FOLDER,
    DEFAULT_MEMES_PATH,
    DEFAULT_TAGS_PATH,
    LogLevel,
    OnError,
    PipelineConfig,
)
from meme_exif.errors import MemeExifError
from meme_exif.metadata import FIELD_TAGS, WriteReport, read_fields, write_memes
from meme_exif.reconcile import (
    build_tag_map,
    list_image_files,
    match_images,
    resolve_tags,
    write_diagnostics,
)
from meme_exif.records import Meme, Tag, read_records


# Cyclopts app
__version__ = "0.1.0"
app = App(
    name="meme-exif",
    version=__version__,
)


def setup_logging(
    file_log_level: LogLevel = "DEBUG",
    console_log_level: LogLevel = "INFO",
    log_folder: Path = DEFAULT_LOG_FOLDER,
) -> None:
    """
    Configure Loguru for both console and file logging.

    Args:
        file_log_level: Log level for file (use 'OFF' to disable)
        console_log_level: Log level for console (use 'OFF' to disable)
        log_folder: Directory where log files are stored

    """
    # Remove default handler
    logger.remove()

    # Add file logging
    if file_log_level != "OFF":
        log_folder.mkdir(parents=True, exist_ok=True)
        log_file = log_folder / Path(
            datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S-meme_exif.log"),
        )
        logger.add(
            log_file,
            level=file_log_level,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name:<8}:{function:<25}:{line:>4} | "
                "{message:<40} | "
                "{extra}"
            ),
            rotation="500 MB",
            retention="10 days",
            compression="zip",
        )

    # Add console logging
    if console_log_level != "OFF":
        logger.add(
            sys.stderr,
            level=console_log_level,
            colorize=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <7}</level> | "
                "<level>{message:<40.50}</level> | "
                "<yellow>{extra}</yellow>"
            ),
        )


class PipelineSummary(BaseModel):
    """What a run did, stage by stage."""

    tags: int
    memes: int
    matched: int
    diagnostics: list[str] = Field(default_factory=list)
    diagnostics_file: Path | None = None
    report: WriteReport = Field(default_factory=WriteReport)


def run_pipeline(config: PipelineConfig) -> PipelineSummary:
    """
    Decode the exports, reconcile them with the image folder and stamp the images.

    Args:
        config: Paths and policies for the run

    Returns:
        PipelineSummary with counts, collected diagnostics and the write report.

    Raises:
        OSError: If an export file cannot be opened.
        RecordDecodeError: If an export holds a document of the wrong shape.
        MetadataWriteError: If a save fails and `config.on_error` is 'abort'.

    """
    decode_diagnostics: list[str] = []
    logger.info("reading_tags", file=str(config.tags_path))
    tags = read_records(config.tags_path, Tag, decode_diagnostics)
    logger.info("reading_memes", file=str(config.memes_path))
    memes = read_records(config.memes_path, Meme, decode_diagnostics)

    tag_map = build_tag_map(tags)
    outputs, tag_diagnostics = resolve_tags(memes, tag_map)

    available = list_image_files(config.images_dir)
    survivors, image_diagnostics = match_images(outputs, available)

    diagnostics = decode_diagnostics + tag_diagnostics + image_diagnostics
    diagnostics_written = write_diagnostics(diagnostics, config.error_log)

    report = write_memes(
        survivors,
        config.images_dir,
        on_error=config.on_error,
        backup=config.backup,
    )

    return PipelineSummary(
        tags=len(tags),
        memes=len(memes),
        matched=len(survivors),
        diagnostics=diagnostics,
        diagnostics_file=config.error_log if diagnostics_written else None,
        report=report,
    )


def _resolve_path(value: Path | None, env_default: str | None, prompt: str) -> Path:
    """Use the CLI value, then the environment default, then ask on stdin."""
    if value is not None:
        return value
    if env_default:
        return Path(env_default)
    return Path(input(f"{prompt}: ").strip())


@app.default
def stamp(
    images_dir: Annotated[
        Path | None,
        Parameter(
            name=("--images", "-i"),
            help="Directory with the image files (flat). Prompted for if not set",
        ),
    ] = None,
    tags_path: Annotated[
        Path | None,
        Parameter(
            name=("--tags", "-t"),
            help="Path to the 'tags.bson' export. Prompted for if not set",
        ),
    ] = None,
    memes_path: Annotated[
        Path | None,
        Parameter(
            name=("--memes", "-m"),
            help="Path to the 'memes.bson' export. Prompted for if not set",
        ),
    ] = None,
    *,
    error_log: Annotated[
        Path,
        Parameter(
            name=("--error-log",),
            help="File listing records dropped during reconciliation",
        ),
    ] = DEFAULT_ERROR_LOG,
    on_error: Annotated[
        OnError,
        Parameter(
            name=("--on-error",),
            help="When an image cannot be saved: 'abort' the batch or 'continue'",
        ),
    ] = "continue",
    backup: Annotated[
        bool,
        Parameter(
            name=("--backup",),
            negative="--no-backup",
            help="Let ExifTool keep an _original copy of every modified image",
        ),
    ] = False,
    file_log_level: Annotated[
        LogLevel,
        Parameter(
            name="--file-log-level",
            help="Log level for file (use 'OFF' to disable)",
        ),
    ] = "DEBUG",
    log_folder: Annotated[
        Path,
        Parameter(
            name=("--log-folder",),
            help="Folder where log files are stored",
        ),
    ] = DEFAULT_LOG_FOLDER,
    console_log_level: Annotated[
        LogLevel,
        Parameter(
            name="--console-log-level",
            help="Log level for console (use 'OFF' to disable)",
        ),
    ] = "INFO",
) -> None:
    """
    Embed title, description and tags from a BSON export into matching images.

    Requirements:
    - ExifTool installed and on PATH.

    Inputs:
    - An image directory and the 'tags.bson' / 'memes.bson' exports. Missing paths are
        taken from MEME_EXIF_IMAGES_DIR, MEME_EXIF_TAGS_PATH and MEME_EXIF_MEMES_PATH,
        or asked for interactively.

    Behavior:
    - Tag ids are resolved to names; unknown ids are dropped from the keywords.
    - Memes whose image is not a JPG/JPEG present in the directory are skipped.
    - Dropped tags and memes are listed in --error-log.
    - Each remaining image has its metadata replaced by the three provenance fields.

    Exit status: returns 1 if an export cannot be read or any image fails to save.

    Examples:
        meme-exif -i ./memes -t ./export/tags.bson -m ./export/memes.bson
        meme-exif -i ./memes -t tags.bson -m memes.bson --on-error abort --backup

    """
    setup_logging(
        file_log_level=file_log_level,
        console_log_level=console_log_level,
        log_folder=log_folder,
    )

    config = PipelineConfig(
        images_dir=_resolve_path(
            images_dir,
            DEFAULT_IMAGES_DIR,
            "Enter the path to the directory with images",
        ),
        tags_path=_resolve_path(tags_path, DEFAULT_TAGS_PATH, "Enter the path to 'tags.bson'"),
        memes_path=_resolve_path(
            memes_path,
            DEFAULT_MEMES_PATH,
            "Enter the path to 'memes.bson'",
        ),
        error_log=error_log,
        on_error=on_error,
        backup=backup,
    )
    logger.info(
        "starting_meme_exif",
        images_dir=str(config.images_dir),
        tags_path=str(config.tags_path),
        memes_path=str(config.memes_path),
        error_log=str(config.error_log),
        on_error=config.on_error,
        backup=config.backup,
    )

    try:
        summary = run_pipeline(config)
    except (OSError, MemeExifError) as exc:
        logger.error("stamping_failed", error=str(exc))
        raise SystemExit(1) from exc

    logger.info(
        "processing_summary",
        tags=summary.tags,
        memes=summary.memes,
        matched=summary.matched,
        dropped_or_unresolved=len(summary.diagnostics),
        diagnostics_file=str(summary.diagnostics_file) if summary.diagnostics_file else None,
        written=len(summary.report.written),
        skipped=len(summary.report.skipped),
        failed=len(summary.report.failed),
    )
    if summary.report.failed:
        logger.error("files_failed", files=summary.report.failed)
        raise SystemExit(1)

    logger.info("all_exif_tags_added")


@app.command
def show(
    images: Annotated[
        list[Path],
        Parameter(
            validator=validators.Path(exists=True, file_okay=True, dir_okay=False),
            help="Images to inspect",
        ),
    ],
) -> None:
    """
    Print the description, title and keywords stored in images.

    Examples:
        meme-exif show ./memes/cat.jpg ./memes/dog.jpeg

    """
    for image in images:
        fields = read_fields(image)
        print(image)  # noqa: T201
        for tag in FIELD_TAGS:
            print(f"  {tag}: {fields[tag]}")  # noqa: T201


if __name__ == "__main__":
    app()
