import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Dict, Any, Sequence, Union

import yaml

from watermarker.errors import ConfigurationError, UnsupportedFormatError

DEFAULT_TARGET_DIR = Path("./output")

CONFIG_KEYS = (
    "target_dir",
    "width",
    "height",
    "format",
    "workers",
    "recursive",
    "log_level",
)


class OutputFormat(Enum):
    """Encodings the pipeline can write, as (Pillow format, file extension)."""

    PNG = ("PNG", "png")
    JPEG = ("JPEG", "jpg")
    WEBP = ("WEBP", "webp")
    BMP = ("BMP", "bmp")
    TIFF = ("TIFF", "tiff")

    @property
    def pil_format(self) -> str:
        return self.value[0]

    @property
    def extension(self) -> str:
        return self.value[1]


EXPLICIT_FORMATS = {
    "png": OutputFormat.PNG,
    "jpg": OutputFormat.JPEG,
    "jpeg": OutputFormat.JPEG,
    "webp": OutputFormat.WEBP,
    "bmp": OutputFormat.BMP,
    "tiff": OutputFormat.TIFF,
}

# Source files are also recognised by the short TIFF extension.
EXTENSION_FORMATS = dict(EXPLICIT_FORMATS, tif=OutputFormat.TIFF)


def parse_format(format_name: str) -> OutputFormat:
    """Parse an explicitly requested output format, case-insensitively."""
    try:
        return EXPLICIT_FORMATS[format_name.lower()]
    except KeyError:
        raise UnsupportedFormatError(format_name) from None


def detect_format(path: Path) -> Optional[OutputFormat]:
    """Infer a format from the file extension, or None if unrecognised."""
    return EXTENSION_FORMATS.get(path.suffix.lower().lstrip("."))


@dataclass(frozen=True)
class ResizeSpec:
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def enabled(self) -> bool:
        return self.width is not None or self.height is not None

    def target_size(self, source_size: Tuple[int, int]) -> Optional[Tuple[int, int]]:
        """Compute the output dimensions for an image of ``source_size``.

        Both dimensions given: stretch to exactly (width, height).
        One dimension given: derive the other from the source aspect ratio,
        truncated toward zero (never below one pixel).
        Neither given: None, meaning no resize.
        """
        if not self.enabled:
            return None

        if self.width is not None and self.height is not None:
            return self.width, self.height

        source_width, source_height = source_size
        if self.width is not None:
            derived = int(self.width * (source_height / source_width))
            return self.width, max(1, derived)

        derived = int(self.height * (source_width / source_height))
        return max(1, derived), self.height


@dataclass(frozen=True)
class BatchConfig:
    watermark_path: Path
    input_paths: Tuple[Path, ...]
    target_dir: Path = DEFAULT_TARGET_DIR
    resize: ResizeSpec = field(default_factory=ResizeSpec)
    output_format: Optional[OutputFormat] = None
    workers: Optional[int] = None
    recursive: bool = False


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load batch settings from a YAML file."""
    try:
        with config_path.open("r") as f:
            config = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {config_path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    unknown = sorted(set(config) - set(CONFIG_KEYS))
    if unknown:
        raise ConfigurationError(
            f"Unknown config keys in {config_path}: {', '.join(unknown)}"
        )

    return config


def _positive_int(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return value


def _path(name: str, value: Any) -> Optional[Path]:
    if value is None:
        return None
    if not isinstance(value, (str, os.PathLike)):
        raise ConfigurationError(f"{name} must be a path, got {value!r}")
    return Path(value)


def _flag(name: str, value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigurationError(f"{name} must be true or false, got {value!r}")
    return value


def make_config(
    watermark_path: Union[str, Path],
    input_paths: Sequence[Union[str, Path]],
    target_dir: Union[str, Path, None] = None,
    width: Optional[int] = None,
    height: Optional[int] = None,
    format: Optional[str] = None,
    workers: Optional[int] = None,
    recursive: bool = False,
) -> BatchConfig:
    """Validate raw settings and build the immutable batch configuration."""
    if not input_paths:
        raise ConfigurationError("At least one image or directory path is required")

    output_format = parse_format(str(format)) if format is not None else None

    return BatchConfig(
        watermark_path=Path(watermark_path),
        input_paths=tuple(Path(p) for p in input_paths),
        target_dir=_path("target_dir", target_dir) or DEFAULT_TARGET_DIR,
        resize=ResizeSpec(
            width=_positive_int("width", width),
            height=_positive_int("height", height),
        ),
        output_format=output_format,
        workers=_positive_int("workers", workers),
        recursive=_flag("recursive", recursive),
    )
