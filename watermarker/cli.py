import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from watermarker import __version__
from watermarker.config import DEFAULT_TARGET_DIR, BatchConfig, load_config, make_config
from watermarker.errors import ConfigurationError
from watermarker.pipeline import BatchReport, run_batch

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG_ERROR = 2

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

logger = logging.getLogger("watermarker")


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="watermarker",
        description="A CLI tool for adding watermarks to images.",
    )
    parser.add_argument("watermark_path", type=Path, help="Path to the watermark image.")
    parser.add_argument(
        "image_paths",
        type=Path,
        nargs="+",
        help="Path(s) to the image(s) or directories to be watermarked.",
    )
    parser.add_argument(
        "-t",
        "--target-path",
        type=Path,
        default=None,
        help=f"Target directory to save watermarked images (default: {DEFAULT_TARGET_DIR}).",
    )
    parser.add_argument(
        "--width",
        type=int,
        default=None,
        help="Target width; height follows the aspect ratio unless --height is given.",
    )
    parser.add_argument(
        "--height",
        type=int,
        default=None,
        help="Target height; width follows the aspect ratio unless --width is given.",
    )
    parser.add_argument(
        "-f",
        "--format",
        default=None,
        help="Output format: png, jpg, jpeg, webp, bmp or tiff (default: from source extension).",
    )
    parser.add_argument(
        "-w",
        "--workers",
        type=int,
        default=None,
        help="Maximum number of images processed at once.",
    )
    parser.add_argument(
        "-r",
        "--recursive",
        action="store_true",
        default=None,
        help="Descend into subdirectories of directory inputs.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="YAML file with default settings; command-line options take precedence.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable the progress bar."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def resolve_config(args: argparse.Namespace, settings: Dict[str, Any]) -> BatchConfig:
    """Merge settings from the YAML config file with command-line options."""
    settings = {k: v for k, v in settings.items() if k != "log_level"}

    overrides = {
        "target_dir": args.target_path,
        "width": args.width,
        "height": args.height,
        "format": args.format,
        "workers": args.workers,
        "recursive": args.recursive,
    }
    for key, value in overrides.items():
        if value is not None:
            settings[key] = value

    return make_config(args.watermark_path, args.image_paths, **settings)


def resolve_log_level(args: argparse.Namespace, settings: Dict[str, Any]) -> str:
    if args.verbose:
        return "DEBUG"
    level = str(settings.get("log_level", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"Invalid log_level: {settings['log_level']!r}")
    return level


def report_summary(report: BatchReport) -> None:
    """Print each failed input once, then the counts."""
    for failure in report.discovery_failures:
        print(f"  - {failure.path}: {failure.reason}", file=sys.stderr)
    for result in report.results:
        if not result.ok:
            print(f"  - {result.source_path}: {result.outcome.reason}", file=sys.stderr)
    print(report.summary(), file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])

    try:
        settings = load_config(args.config) if args.config is not None else {}
        setup_logging(resolve_log_level(args, settings))
        config = resolve_config(args, settings)
    except ConfigurationError as e:
        setup_logging("INFO")
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR

    progress: Optional[tqdm] = None

    def on_start(total: int) -> None:
        nonlocal progress
        if not args.no_progress:
            progress = tqdm(total=total, desc="Watermarking", unit="img")

    def on_result(_result) -> None:
        if progress is not None:
            progress.update(1)

    try:
        with logging_redirect_tqdm():
            report = run_batch(config, on_result=on_result, on_start=on_start)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR
    finally:
        if progress is not None:
            progress.close()

    report_summary(report)
    return EXIT_OK if report.ok else EXIT_FAILURES
