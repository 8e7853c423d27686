"""
Embedding meme provenance into image EXIF metadata.

Each image gets its existing metadata wiped and three fields written:
 - EXIF:ImageDescription: "<title> <description>" as plain text
 - EXIF:XPTitle: the same text as a Windows wide string
 - EXIF:XPKeywords: tag names joined with ';' as a Windows wide string

Requirements:
 - Exiftool installed and available in PATH.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Any

from exiftool import ExifToolHelper  # type: ignore[attr-defined]
from exiftool.exceptions import ExifToolExecuteError
from loguru import logger
from PIL import Image
from pydantic import BaseModel, Field

from meme_exif.config import OnError
from meme_exif.errors import MetadataOpenError, MetadataWriteError
from meme_exif.wide_string import from_utf16le_string, to_utf16le_string


if TYPE_CHECKING:
    from collections.abc import Sequence

    from meme_exif.records import MemeOutput


DESCRIPTION_TAG = "EXIF:ImageDescription"
TITLE_TAG = "EXIF:XPTitle"
KEYWORDS_TAG = "EXIF:XPKeywords"
FIELD_TAGS = (DESCRIPTION_TAG, TITLE_TAG, KEYWORDS_TAG)
# Fields carried in the decimal-byte-list wire format
WIDE_TAGS = frozenset({TITLE_TAG, KEYWORDS_TAG})
KEYWORD_SEPARATOR = ";"


def compose_description(meme: "MemeOutput") -> str:
    """Join title and description with a single space."""
    return f"{meme.title} {meme.description}"


def compose_keywords(meme: "MemeOutput") -> str:
    """
    Join tag names with ';'.

    Separators inside tag names are not escaped, so "a;b" reads back as two keywords.
    """
    return KEYWORD_SEPARATOR.join(meme.tags)


def build_fields(meme: "MemeOutput") -> dict[str, str]:
    """
    Return the metadata fields for a meme, wide fields already in wire format.

    A meme without tags gets the bare terminator "0 0" as keywords. Once written through
    ExifTool that means no XPKeywords tag at all (see `ExifMetadata.set_tag_string`).

    Examples:
        >>> from meme_exif.records import MemeOutput
        >>> fields = build_fields(MemeOutput(id="m", title="A", description="b", image="x.jpg"))
        >>> fields["EXIF:ImageDescription"], fields["EXIF:XPTitle"]
        ('A b', '65 0 32 0 98 0 0 0')

    """
    description = compose_description(meme)
    return {
        DESCRIPTION_TAG: description,
        TITLE_TAG: to_utf16le_string(description),
        KEYWORDS_TAG: to_utf16le_string(compose_keywords(meme)),
    }


class ExifMetadata:
    """
    Mutable metadata container for one image, backed by an ExifTool session.

    Changes are buffered and applied by `save()` in a single ExifTool invocation.
    """

    def __init__(self, path: Path, et: ExifToolHelper) -> None:
        self.path = path
        self._et = et
        self._cleared = False
        self._pending: dict[str, str] = {}

    @classmethod
    def open(cls, path: Path, et: ExifToolHelper) -> "ExifMetadata":
        """
        Open the container for `path`.

        Raises:
            MetadataOpenError: If the path is not a file or not a readable image.

        """
        if not path.is_file():
            raise MetadataOpenError(path, "not a file")
        try:
            with Image.open(path) as img:
                img.verify()
        except (OSError, SyntaxError, ValueError) as exc:
            raise MetadataOpenError(path, str(exc)) from exc
        return cls(path, et)

    def clear(self) -> None:
        """Drop every existing metadata tag of the image (and any pending change)."""
        self._cleared = True
        self._pending.clear()

    def set_tag_string(self, name: str, value: str) -> None:
        """
        Set a tag by its ExifTool name.

        Wide fields take the decimal-byte-list wire format. ExifTool encodes XP* tags to
        null-terminated UCS-2LE on its own, so they are handed over as decoded text and
        end up with the same bytes. The bare terminator ("0 0") decodes to "", which
        ExifTool treats as a deletion: the field is left absent rather than stored empty.
        """
        if name in WIDE_TAGS:
            value = from_utf16le_string(value)
        self._pending[name] = value

    def tags_to_write(self) -> dict[str, str]:
        """ExifTool assignments for `save()`; `all=` first so it only wipes old values."""
        tags: dict[str, str] = {"all": ""} if self._cleared else {}
        tags.update(self._pending)
        return tags

    def save(self, *, backup: bool = False) -> None:
        """
        Write pending changes back to the image in place; pixel data is untouched.

        Args:
            backup: If True, let ExifTool keep a copy with an _original suffix

        Raises:
            MetadataWriteError: If ExifTool cannot write the file.

        """
        params = [] if backup else ["-overwrite_original"]
        try:
            self._et.set_tags(
                files=[str(self.path)],
                tags=self.tags_to_write(),
                params=params,
            )
        except (ValueError, TypeError, ExifToolExecuteError) as e:
            raise MetadataWriteError(self.path, str(e)) from e
        self._cleared = False
        self._pending.clear()


def write_meme(
    meme: "MemeOutput",
    image_path: Path,
    et: ExifToolHelper,
    *,
    backup: bool = False,
) -> None:
    """Clear the metadata of `image_path` and write the fields of `meme` to it."""
    meta = ExifMetadata.open(image_path, et)
    meta.clear()
    for name, value in build_fields(meme).items():
        meta.set_tag_string(name, value)
    meta.save(backup=backup)


class WriteReport(BaseModel):
    """Outcome of the write phase, as image filenames."""

    written: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


def write_memes(
    memes: "Sequence[MemeOutput]",
    images_dir: Path,
    *,
    on_error: OnError = "continue",
    backup: bool = False,
) -> WriteReport:
    """
    Stamp every matched meme's image with its metadata, in input order.

    Images whose metadata cannot be opened are skipped. A failed save either aborts the
    remaining images (`on_error="abort"`) or is recorded and the batch goes on.

    Args:
        memes: Records that passed image matching (bare `image` filenames)
        images_dir: Folder holding the images
        on_error: Policy for save failures: 'abort' or 'continue'
        backup: If True, let ExifTool keep _original copies

    Returns:
        WriteReport listing written, skipped and failed images.

    Raises:
        MetadataWriteError: On the first save failure when `on_error` is 'abort'.

    """
    report = WriteReport()
    total = len(memes)
    if not memes:
        logger.info("no_images_to_write")
        return report

    with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
        for idx, meme in enumerate(memes, start=1):
            index = f"{idx}/{total}"
            with logger.contextualize(file=meme.image):
                try:
                    write_meme(meme, images_dir / meme.image, et, backup=backup)
                except MetadataOpenError as exc:
                    logger.debug("metadata_open_failed_skipping", reason=exc.reason, index=index)
                    report.skipped.append(meme.image)
                    continue
                except MetadataWriteError as exc:
                    if on_error == "abort":
                        logger.error(
                            "metadata_write_failed_aborting",
                            error=exc.reason,
                            index=index,
                        )
                        raise
                    logger.error("metadata_write_failed", error=exc.reason, index=index)
                    report.failed.append(meme.image)
                    continue
                logger.info("metadata_written", index=index, tags=len(meme.tags))
                report.written.append(meme.image)

    logger.info(
        "write_phase_summary",
        total=total,
        written=len(report.written),
        skipped=len(report.skipped),
        failed=len(report.failed),
    )
    return report


def read_fields(image_path: Path) -> dict[str, str]:
    """
    Read the three provenance fields back from an image.

    Wide fields come back as text, decoded by ExifTool. Missing fields are empty strings.

    Examples:
        >>> read_fields(Path("memes/cat.jpg"))  # doctest: +SKIP
        {'EXIF:ImageDescription': 'Cat A cat.', 'EXIF:XPTitle': 'Cat A cat.',
         'EXIF:XPKeywords': 'funny'}

    """
    with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
        blocks: list[dict[str, Any]] = et.get_tags(files=[str(image_path)], tags=list(FIELD_TAGS))

    block = blocks[0] if blocks else {}
    return {tag: str(block.get(tag, "")) for tag in FIELD_TAGS}
