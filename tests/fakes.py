"""In-memory stand-in for pyexiftool's ExifToolHelper."""

from pathlib import Path
from typing import Any

from exiftool.exceptions import ExifToolExecuteError


class FakeExifTool:
    """
    Minimal ExifToolHelper stub recording set_tags calls and serving stored tags.

    Patched in place of the ExifToolHelper class: calling it "starts" a session and
    returns the same instance, so tests can inspect every call of a run.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.stored: dict[str, dict[str, str]] = {}
        self.fail_on: set[str] = set()
        self.sessions = 0

    def __call__(self) -> "FakeExifTool":
        self.sessions += 1
        return self

    def __enter__(self) -> "FakeExifTool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def set_tags(
        self,
        files: list[str],
        tags: dict[str, str],
        params: list[str] | None = None,
    ) -> str:
        self.calls.append({"files": list(files), "tags": dict(tags), "params": params})
        target = files[0]
        if Path(target).name in self.fail_on:
            raise ExifToolExecuteError(1, "", "Error: cannot write", ["-all="])
        block = {} if tags.get("all") == "" else dict(self.stored.get(target, {}))
        block.update({name: value for name, value in tags.items() if name != "all"})
        self.stored[target] = block
        return "1 image files updated"

    def get_tags(
        self,
        files: list[str],
        tags: list[str],
        params: list[str] | None = None,  # noqa: ARG002
    ) -> list[dict[str, Any]]:
        return [
            {"SourceFile": f, **{t: v for t, v in self.stored.get(f, {}).items() if t in tags}}
            for f in files
        ]
