from pathlib import Path
from typing import Union


class WatermarkerError(Exception):
    """Base class for all errors raised by the watermarking pipeline."""


class ConfigurationError(WatermarkerError):
    """Fatal error detected before any job runs."""


class UnsupportedFormatError(ConfigurationError):
    def __init__(self, format_name: str):
        super().__init__(f"Unsupported format: {format_name}")
        self.format_name = format_name


class DecodeError(ConfigurationError):
    def __init__(self, path: Union[str, Path], cause: Exception):
        super().__init__(f"Failed to open watermark image {path}: {cause}")
        self.path = Path(path)
        self.cause = cause


class DiscoveryError(WatermarkerError):
    """A top-level input could not be turned into work items."""

    def __init__(self, path: Union[str, Path], reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class MetadataError(DiscoveryError):
    def __init__(self, path: Union[str, Path], cause: OSError):
        super().__init__(path, f"Failed to read metadata: {cause}")
        self.cause = cause


class JobError(WatermarkerError):
    """A single job failed; sibling jobs are unaffected."""


class JobBuildError(JobError):
    pass
