"""Run configuration: environment-backed defaults and the pipeline config model."""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "OFF"]
OnError = Literal["abort", "continue"]

# Configuration defaults
DEFAULT_IMAGES_DIR = os.getenv("MEME_EXIF_IMAGES_DIR")
DEFAULT_TAGS_PATH = os.getenv("MEME_EXIF_TAGS_PATH")
DEFAULT_MEMES_PATH = os.getenv("MEME_EXIF_MEMES_PATH")
DEFAULT_ERROR_LOG = Path(os.getenv("MEME_EXIF_ERROR_LOG", "error_logs.txt"))
DEFAULT_LOG_FOLDER = Path(os.getenv("MEME_EXIF_LOG_FOLDER", "logs"))


class PipelineConfig(BaseModel):
    """Everything a run needs; the pipeline itself never prompts."""

    images_dir: Path
    tags_path: Path
    memes_path: Path
    error_log: Path = DEFAULT_ERROR_LOG
    on_error: OnError = "continue"
    backup: bool = False
