"""
Typed records decoded from BSON exports (tags.bson / memes.bson).

The export is a plain concatenation of BSON documents, each prefixed by its own
little-endian int32 length. Trailing bytes that do not form a complete document
are treated as end-of-stream. MongoDB ObjectIds, in `_id` or in a meme's tag
references, are read as their hex string.
"""

import struct
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, TypeVar

import bson
from bson.errors import InvalidBSON
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from meme_exif.errors import RecordDecodeError


if TYPE_CHECKING:
    from collections.abc import Iterator


LENGTH_PREFIX_SIZE = 4
# Smallest valid document: int32 length + terminating NUL
MIN_DOCUMENT_SIZE = 5

RecordT = TypeVar("RecordT", bound=BaseModel)


def _coerce_object_id(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, bson.ObjectId):
        return str(value)
    return value


class Tag(BaseModel):
    """Tag definition from the export. Tags without a name cannot be resolved."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_object_id(cls, value: Any) -> Any:  # noqa: ANN401
        return _coerce_object_id(value)


class Meme(BaseModel):
    """Meme entry as exported; `tags` holds tag ids, `image` a path-like reference."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    title: str
    description: str
    tags: list[str]
    image: str

    @field_validator("id", mode="before")
    @classmethod
    def stringify_object_id(cls, value: Any) -> Any:  # noqa: ANN401
        return _coerce_object_id(value)

    @field_validator("tags", mode="before")
    @classmethod
    def stringify_tag_references(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, list):
            return [_coerce_object_id(item) for item in value]
        return value


class MemeOutput(BaseModel):
    """Working record: resolved tag names and an image reference being normalized."""

    id: str
    title: str
    description: str
    tags: list[str] = Field(default_factory=list)
    image: str


def _iter_documents(
    stream: BinaryIO,
    source: str,
    diagnostics: list[str],
) -> "Iterator[dict[str, Any]]":
    """
    Yield raw BSON documents until the stream runs out.

    A short read (partial length prefix or truncated body) or an impossible length ends
    the iteration instead of raising, so trailing bytes in an export are tolerated. A
    complete document that is not valid BSON is skipped and decoding resumes after it.
    Every dropped byte range is reported in `diagnostics`.
    """
    offset = 0
    while True:
        prefix = stream.read(LENGTH_PREFIX_SIZE)
        if not prefix:
            return
        if len(prefix) < LENGTH_PREFIX_SIZE:
            logger.warning("bson_trailing_bytes_ignored", offset=offset, size=len(prefix))
            diagnostics.append(_end_of_stream(source, offset, len(prefix)))
            return

        (size,) = struct.unpack("<i", prefix)
        if size < MIN_DOCUMENT_SIZE:
            ignored = len(prefix) + len(stream.read())
            logger.warning("bson_invalid_document_size", offset=offset, size=size)
            diagnostics.append(_end_of_stream(source, offset, ignored))
            return

        body = stream.read(size - LENGTH_PREFIX_SIZE)
        if len(body) < size - LENGTH_PREFIX_SIZE:
            logger.warning(
                "bson_truncated_document_ignored",
                offset=offset,
                expected=size,
                received=len(body) + LENGTH_PREFIX_SIZE,
            )
            diagnostics.append(_end_of_stream(source, offset, len(prefix) + len(body)))
            return

        try:
            document = bson.decode(prefix + body)
        except InvalidBSON as exc:
            logger.warning("bson_malformed_document_skipped", offset=offset, error=str(exc))
            diagnostics.append(f"{source}: malformed document at offset {offset} skipped")
        else:
            yield document
        offset += size


def _end_of_stream(source: str, offset: int, ignored: int) -> str:
    return f"{source}: stream ended at offset {offset}, {ignored} trailing bytes ignored"


def decode_all(
    stream: BinaryIO,
    model: type[RecordT],
    *,
    source: str = "stream",
    diagnostics: list[str] | None = None,
) -> list[RecordT]:
    """
    Decode every document in `stream` into `model` instances, preserving order.

    Args:
        stream: Binary file-like object positioned at the first document
        model: Pydantic model the documents must conform to
        source: Name used in diagnostics, usually the export's filename
        diagnostics: If given, receives one line per skipped document or ignored tail

    Returns:
        The decoded records in stream order.

    Raises:
        RecordDecodeError: If a document does not match the fields of `model`.

    """
    collected = [] if diagnostics is None else diagnostics
    records: list[RecordT] = []
    for index, document in enumerate(_iter_documents(stream, source, collected)):
        try:
            records.append(model.model_validate(document))
        except ValidationError as exc:
            raise RecordDecodeError(model.__name__, index, exc) from exc
    return records


def read_records(
    path: Path,
    model: type[RecordT],
    diagnostics: list[str] | None = None,
) -> list[RecordT]:
    """Open a BSON export and decode it. A missing or unreadable file raises OSError."""
    with path.open("rb") as stream:
        records = decode_all(stream, model, source=path.name, diagnostics=diagnostics)
    logger.info("records_decoded", file=path.name, model=model.__name__, count=len(records))
    return records
