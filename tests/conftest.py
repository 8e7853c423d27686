"""Shared fixtures: BSON export files, JPEG images and an in-memory ExifTool stand-in."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import bson
import pytest
from PIL import Image

import meme_exif.metadata as metadata
from fakes import FakeExifTool


@pytest.fixture
def fake_exiftool(monkeypatch: pytest.MonkeyPatch) -> FakeExifTool:
    fake = FakeExifTool()
    monkeypatch.setattr(metadata, "ExifToolHelper", fake)
    return fake


@pytest.fixture
def make_jpeg() -> Callable[[Path], Path]:
    def _make(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (4, 4), (200, 30, 30)).save(path, format="JPEG")
        return path

    return _make


@pytest.fixture
def write_bson() -> Callable[[Path, list[dict[str, Any]]], Path]:
    def _write(path: Path, documents: list[dict[str, Any]]) -> Path:
        path.write_bytes(b"".join(bson.encode(doc) for doc in documents))
        return path

    return _write
