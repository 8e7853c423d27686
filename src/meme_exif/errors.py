"""Exceptions raised by the meme-exif pipeline."""

from pathlib import Path

from pydantic import ValidationError


class MemeExifError(Exception):
    """Base class for pipeline errors."""


class RecordDecodeError(MemeExifError):
    """A BSON document decoded but does not have the shape of the expected record."""

    def __init__(self, model_name: str, index: int, cause: ValidationError) -> None:
        self.model_name = model_name
        self.index = index
        self.cause = cause
        super().__init__(f"document #{index} is not a valid {model_name}: {cause}")


class MetadataOpenError(MemeExifError):
    """The metadata container of an image could not be opened (missing, unsupported, corrupt)."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"cannot open metadata of {path}: {reason}")


class MetadataWriteError(MemeExifError):
    """Persisting metadata back to an image failed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"cannot write metadata to {path}: {reason}")
