from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from PIL import Image

from watermarker.config import BatchConfig, OutputFormat, ResizeSpec, detect_format
from watermarker.errors import JobBuildError


@dataclass(frozen=True)
class Job:
    """One source file to watermark and where to write the result.

    ``watermark`` is the batch's shared overlay; jobs only read it.
    """

    source_path: Path
    output_path: Path
    resize: ResizeSpec
    output_format: OutputFormat
    watermark: Image.Image = field(compare=False, repr=False)


def resolve_output_format(source_path: Path, config: BatchConfig) -> OutputFormat:
    """Explicit format first, then the source extension, then PNG."""
    if config.output_format is not None:
        return config.output_format
    return detect_format(source_path) or OutputFormat.PNG


def build_job(
    source_path: Path,
    config: BatchConfig,
    watermark: Image.Image,
    base_dir: Optional[Path] = None,
) -> Job:
    """Build the job for ``source_path`` without touching any pixels.

    Files found under a directory argument (``base_dir``) keep their path
    relative to it, so direct children land flat in the target directory and
    nested files mirror their subdirectory.
    """
    stem = source_path.stem
    if not stem:
        raise JobBuildError(f"Invalid filename: {source_path}")

    output_format = resolve_output_format(source_path, config)

    output_dir = config.target_dir
    if base_dir is not None:
        output_dir = output_dir / source_path.parent.relative_to(base_dir)

    return Job(
        source_path=source_path,
        output_path=output_dir / f"{stem}.{output_format.extension}",
        resize=config.resize,
        output_format=output_format,
        watermark=watermark,
    )
