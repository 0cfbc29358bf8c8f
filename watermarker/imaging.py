from pathlib import Path
from typing import Tuple

from PIL import Image
from PIL.Image import Resampling

from watermarker.config import OutputFormat, ResizeSpec
from watermarker.errors import DecodeError
from watermarker.jobs import Job

WATERMARK_POSITION = (0, 0)


def load_watermark(watermark_path: Path) -> Image.Image:
    """Decode the watermark once, fully loaded and in RGBA."""
    try:
        with Image.open(watermark_path) as watermark:
            return watermark.convert("RGBA")
    except (OSError, ValueError) as e:
        raise DecodeError(watermark_path, e) from e


def open_image(image_path: Path) -> Image.Image:
    with Image.open(image_path) as image:
        image.load()
        return image


def has_alpha(image: Image.Image) -> bool:
    return "A" in image.getbands() or "transparency" in image.info


def scale_image(image: Image.Image, resize: ResizeSpec) -> Image.Image:
    """Resize to the requested dimensions, if any."""
    size = resize.target_size(image.size)
    if size is None or size == image.size:
        return image

    return image.resize(size, Resampling.LANCZOS)


def add_watermark(image: Image.Image, watermark: Image.Image) -> Image.Image:
    """Composite the watermark over the image at the top-left corner."""
    # Transparent layer the size of the image; paste clips an oversized watermark
    layer = Image.new("RGBA", image.size, (0, 0, 0, 0))
    layer.paste(watermark, WATERMARK_POSITION)

    if image.mode != "RGBA":
        image = image.convert("RGBA")

    return Image.alpha_composite(image, layer)


def save_image(
    image: Image.Image,
    output_path: Path,
    output_format: OutputFormat,
    keep_alpha: bool = True,
) -> Path:
    """Encode the image in ``output_format`` and write it to ``output_path``."""
    if output_format is OutputFormat.JPEG or not keep_alpha:
        image = image.convert("RGB")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(output_path, format=output_format.pil_format)

    return output_path


def watermark_image(job: Job) -> Tuple[Path, Tuple[int, int]]:
    """Run one job: decode, resize, watermark, encode and write.

    Returns the written path and the output dimensions.
    """
    image = open_image(job.source_path)
    keep_alpha = has_alpha(image)

    image = scale_image(image, job.resize)
    image = add_watermark(image, job.watermark)
    output_path = save_image(image, job.output_path, job.output_format, keep_alpha)

    return output_path, image.size
