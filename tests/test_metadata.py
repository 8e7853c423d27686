"""Tests for composing metadata fields and writing them through ExifTool."""

from collections.abc import Callable
from pathlib import Path

import pytest

from meme_exif.errors import MetadataOpenError, MetadataWriteError
from meme_exif.metadata import (
    DESCRIPTION_TAG,
    KEYWORDS_TAG,
    TITLE_TAG,
    ExifMetadata,
    build_fields,
    compose_keywords,
    read_fields,
    write_memes,
)
from meme_exif.records import MemeOutput
from meme_exif.wide_string import to_utf16le_string

from fakes import FakeExifTool


def _meme(image: str, tags: list[str] | None = None) -> MemeOutput:
    return MemeOutput(
        id="m1",
        title="Cat",
        description="A cat.",
        tags=["funny", "animals"] if tags is None else tags,
        image=image,
    )


def test_build_fields_composes_description_and_wide_fields() -> None:
    """Title and description are joined by a space; wide fields use the wire format."""
    fields = build_fields(_meme("cat.jpg"))

    assert fields == {
        DESCRIPTION_TAG: "Cat A cat.",
        TITLE_TAG: to_utf16le_string("Cat A cat."),
        KEYWORDS_TAG: to_utf16le_string("funny;animals"),
    }


def test_compose_keywords_does_not_escape_separator() -> None:
    """A ';' inside a tag name is kept verbatim."""
    assert compose_keywords(_meme("x.jpg", ["a;b", "c"])) == "a;b;c"


def test_open_rejects_non_images(tmp_path: Path, fake_exiftool: FakeExifTool) -> None:
    """Files Pillow cannot identify cannot be opened as metadata containers."""
    bogus = tmp_path / "bogus.jpg"
    bogus.write_text("not an image")

    with pytest.raises(MetadataOpenError):
        ExifMetadata.open(bogus, fake_exiftool)  # type: ignore[arg-type]


def test_open_rejects_missing_file(tmp_path: Path, fake_exiftool: FakeExifTool) -> None:
    """A path without a file behind it cannot be opened."""
    with pytest.raises(MetadataOpenError, match="not a file"):
        ExifMetadata.open(tmp_path / "gone.jpg", fake_exiftool)  # type: ignore[arg-type]


def test_save_clears_before_setting_and_overwrites_in_place(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """`all=` comes first, wide fields are handed to ExifTool as text."""
    image = make_jpeg(tmp_path / "cat.jpg")
    meta = ExifMetadata.open(image, fake_exiftool)  # type: ignore[arg-type]
    meta.clear()
    meta.set_tag_string(DESCRIPTION_TAG, "Cat A cat.")
    meta.set_tag_string(TITLE_TAG, to_utf16le_string("Cat A cat."))

    meta.save()

    (call,) = fake_exiftool.calls
    assert call["files"] == [str(image)]
    assert list(call["tags"]) == ["all", DESCRIPTION_TAG, TITLE_TAG]
    assert call["tags"][TITLE_TAG] == "Cat A cat."
    assert call["params"] == ["-overwrite_original"]


def test_save_with_backup_keeps_original(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """Backups are left to ExifTool by not passing -overwrite_original."""
    image = make_jpeg(tmp_path / "cat.jpg")
    meta = ExifMetadata.open(image, fake_exiftool)  # type: ignore[arg-type]
    meta.set_tag_string(DESCRIPTION_TAG, "x")

    meta.save(backup=True)

    assert fake_exiftool.calls[0]["params"] == []


def test_write_memes_writes_each_image_in_order(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """Every image gets the three fields, one ExifTool session for the batch."""
    make_jpeg(tmp_path / "a.jpg")
    make_jpeg(tmp_path / "b.jpeg")

    report = write_memes([_meme("a.jpg"), _meme("b.jpeg", ["x"])], tmp_path)

    assert report.written == ["a.jpg", "b.jpeg"]
    assert fake_exiftool.sessions == 1
    assert [call["files"][0] for call in fake_exiftool.calls] == [
        str(tmp_path / "a.jpg"),
        str(tmp_path / "b.jpeg"),
    ]
    assert fake_exiftool.calls[1]["tags"] == {
        "all": "",
        DESCRIPTION_TAG: "Cat A cat.",
        TITLE_TAG: "Cat A cat.",
        KEYWORDS_TAG: "x",
    }


def test_write_memes_skips_unopenable_images(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """A corrupt image is skipped silently and the next one is still written."""
    (tmp_path / "broken.jpg").write_bytes(b"\x00\x01garbage")
    make_jpeg(tmp_path / "ok.jpg")

    report = write_memes([_meme("broken.jpg"), _meme("ok.jpg")], tmp_path)

    assert report.skipped == ["broken.jpg"]
    assert report.written == ["ok.jpg"]
    assert report.failed == []


def test_write_memes_continue_records_failures(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """With 'continue', a failed save is recorded and later images are written."""
    make_jpeg(tmp_path / "a.jpg")
    make_jpeg(tmp_path / "b.jpg")
    fake_exiftool.fail_on.add("a.jpg")

    report = write_memes([_meme("a.jpg"), _meme("b.jpg")], tmp_path, on_error="continue")

    assert report.failed == ["a.jpg"]
    assert report.written == ["b.jpg"]


def test_write_memes_abort_stops_the_batch(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """With 'abort', the first failed save propagates and nothing after it is written."""
    make_jpeg(tmp_path / "a.jpg")
    make_jpeg(tmp_path / "b.jpg")
    fake_exiftool.fail_on.add("a.jpg")

    with pytest.raises(MetadataWriteError):
        write_memes([_meme("a.jpg"), _meme("b.jpg")], tmp_path, on_error="abort")

    assert len(fake_exiftool.calls) == 1


def test_write_memes_empty_batch_starts_no_session(
    tmp_path: Path,
    fake_exiftool: FakeExifTool,
) -> None:
    """Nothing to write means ExifTool is never started."""
    report = write_memes([], tmp_path)

    assert report.written == []
    assert fake_exiftool.sessions == 0


def test_write_memes_is_idempotent(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """Writing the same record twice leaves identical fields behind."""
    image = make_jpeg(tmp_path / "cat.jpg")
    memes = [_meme("cat.jpg")]

    write_memes(memes, tmp_path)
    first = read_fields(image)
    write_memes(memes, tmp_path)
    second = read_fields(image)

    assert first == second
    assert fake_exiftool.calls[0]["tags"] == fake_exiftool.calls[1]["tags"]
    assert second == {
        DESCRIPTION_TAG: "Cat A cat.",
        TITLE_TAG: "Cat A cat.",
        KEYWORDS_TAG: "funny;animals",
    }


def test_empty_keywords_are_handed_over_as_empty_text(
    tmp_path: Path,
    make_jpeg: Callable[[Path], Path],
    fake_exiftool: FakeExifTool,
) -> None:
    """No tags gives the bare terminator, passed to ExifTool as "" (a deletion)."""
    make_jpeg(tmp_path / "cat.jpg")
    meme = _meme("cat.jpg", [])

    assert build_fields(meme)[KEYWORDS_TAG] == "0 0"

    write_memes([meme], tmp_path)

    assert fake_exiftool.calls[0]["tags"][KEYWORDS_TAG] == ""
