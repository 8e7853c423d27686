"""
Reconciliation of exported records with each other and with the image folder.

Tag ids are resolved to names, then each meme's image reference is matched against the
files actually present. Problems are collected as one-line diagnostics instead of
stopping the run; dropped records never come back.
"""

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from meme_exif.records import Meme, MemeOutput, Tag


if TYPE_CHECKING:
    from collections.abc import Iterable


SUPPORTED_EXTENSIONS = frozenset({"jpg", "jpeg"})
PATH_SEPARATORS = re.compile(r"[\\/]")


def build_tag_map(tags: "Iterable[Tag]") -> dict[str, str]:
    """
    Map tag ids to names, leaving out tags that have no name.

    Examples:
        >>> build_tag_map([Tag(id="t1", name="funny"), Tag(id="t2", name=None)])
        {'t1': 'funny'}

    """
    tag_map = {tag.id: tag.name for tag in tags if tag.name is not None}
    logger.debug("tag_map_built", count=len(tag_map))
    return tag_map


def resolve_tags(
    memes: "Iterable[Meme]",
    tag_map: dict[str, str],
) -> tuple[list[MemeOutput], list[str]]:
    """
    Replace tag ids with tag names, one output record per meme.

    Unknown ids are omitted from the record and reported; the record itself is kept.

    Returns:
        Tuple of (records, diagnostics) in input order.

    """
    outputs: list[MemeOutput] = []
    diagnostics: list[str] = []
    for meme in memes:
        names: list[str] = []
        for tag_id in meme.tags:
            name = tag_map.get(tag_id)
            if name is None:
                logger.warning("no_matching_tag", tag_id=tag_id, meme=meme.id)
                diagnostics.append(f"No matching tag for id {tag_id}")
                continue
            names.append(name)
        outputs.append(
            MemeOutput(
                id=meme.id,
                title=meme.title,
                description=meme.description,
                tags=names,
                image=meme.image,
            ),
        )
    return outputs, diagnostics


def list_image_files(directory: Path) -> set[str]:
    """
    Return the names of regular files directly inside `directory`.

    Entries that cannot be inspected are skipped. A directory that cannot be listed yields
    an empty set so the run can still finish (every meme is then reported as not found).
    """
    names: set[str] = set()
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                try:
                    if entry.is_file():
                        names.add(entry.name)
                except OSError as exc:
                    logger.debug("directory_entry_skipped", entry=entry.name, error=str(exc))
    except OSError as exc:
        logger.error("image_directory_unreadable", directory=str(directory), error=str(exc))
        return set()

    logger.info("images_listed", directory=str(directory), count=len(names))
    logger.debug("image_files", files=sorted(names))
    return names


def bare_filename(reference: str) -> str:
    """
    Return the last path component of an image reference, accepting '/' and '\\'.

    Examples:
        >>> bare_filename("sub/dir/meme1.jpg")
        'meme1.jpg'
        >>> bare_filename("C:\\\\memes\\\\cat.JPG")
        'cat.JPG'
        >>> bare_filename("x:cat.jpg")
        'x:cat.jpg'

    """
    return PATH_SEPARATORS.split(reference)[-1]


def _extension(filename: str) -> str:
    """Lower-cased extension without the dot; empty when there is none."""
    suffix = Path(filename).suffix
    return suffix[1:].lower() if suffix else ""


def match_images(
    memes: "Iterable[MemeOutput]",
    available: set[str],
) -> tuple[list[MemeOutput], list[str]]:
    """
    Keep the memes whose image is a JPEG present in `available`, with `image` made bare.

    Records with an unsupported extension or a missing file are dropped and reported.
    Input records are not mutated; survivors are copies.

    Returns:
        Tuple of (survivors, diagnostics) in input order.

    """
    survivors: list[MemeOutput] = []
    diagnostics: list[str] = []
    for meme in memes:
        name = bare_filename(meme.image)
        ext = _extension(name)
        if ext not in SUPPORTED_EXTENSIONS:
            logger.warning("unsupported_extension", file=name, extension=ext, meme=meme.id)
            diagnostics.append(f"File {name} has unsupported extension '{ext}'")
            continue
        if name not in available:
            logger.warning("image_not_found", file=name, meme=meme.id)
            diagnostics.append(f"File {name} not found in directory")
            continue
        survivors.append(meme.model_copy(update={"image": name}))

    logger.info(
        "images_matched",
        total=len(survivors) + len(diagnostics),
        matched=len(survivors),
        dropped=len(diagnostics),
    )
    return survivors, diagnostics


def write_diagnostics(lines: list[str], path: Path) -> bool:
    """
    Write one diagnostic per line to `path`. Nothing is written when `lines` is empty.

    Returns:
        True if the file was written, False if there was nothing to write or it failed.

    """
    if not lines:
        return False
    try:
        with path.open("w", encoding="utf-8") as fh:
            for line in lines:
                fh.write(f"{line}\n")
    except OSError as exc:
        logger.warning("diagnostics_write_failed", file=str(path), error=str(exc))
        return False
    logger.info("diagnostics_written", file=str(path), count=len(lines))
    return True
