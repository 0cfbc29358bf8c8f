import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from watermarker.errors import DiscoveryError, MetadataError

logger = logging.getLogger(__name__)


class PathKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class SourceFile:
    """A discovered image file.

    ``base_dir`` is the directory argument the file was found under, or None
    when the file was named directly.
    """

    path: Path
    base_dir: Optional[Path] = None


@dataclass(frozen=True)
class DiscoveryFailure:
    path: Path
    reason: str


def classify(path: Path) -> PathKind:
    """Classify a user-supplied path using filesystem metadata.

    Symlinks are followed. Anything that exists but is neither a regular file
    nor a directory raises DiscoveryError.
    """
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return PathKind.NOT_FOUND
    except OSError as e:
        raise MetadataError(path, e) from e

    if stat.S_ISREG(st.st_mode):
        return PathKind.FILE
    if stat.S_ISDIR(st.st_mode):
        return PathKind.DIRECTORY
    raise DiscoveryError(path, "Path is neither file nor directory")


def expand(dir_path: Path, recursive: bool = False) -> List[Path]:
    """List the regular files inside ``dir_path``, sorted by name.

    Symlinks resolving to regular files are included; broken symlinks and
    special files are not. With ``recursive``, real subdirectories are walked
    as well, but symlinked directories never are. A nested directory that
    cannot be read is logged and skipped; only ``dir_path`` itself failing
    raises DiscoveryError.
    """
    try:
        with os.scandir(dir_path) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        raise DiscoveryError(dir_path, f"Failed to read directory: {e}") from e

    files: List[Path] = []
    for entry in entries:
        if entry.is_file():
            files.append(Path(entry.path))
        elif recursive and entry.is_dir(follow_symlinks=False):
            try:
                files.extend(expand(Path(entry.path), recursive=True))
            except DiscoveryError as e:
                logger.warning("Skipping subdirectory %s", e)
    return files


def discover(
    input_paths: Sequence[Path], recursive: bool = False
) -> Tuple[List[SourceFile], List[DiscoveryFailure]]:
    """Resolve mixed file/directory arguments into source files.

    A failure on one input is recorded and does not stop the others.
    """
    sources: List[SourceFile] = []
    failures: List[DiscoveryFailure] = []

    for path in input_paths:
        try:
            kind = classify(path)
            if kind is PathKind.FILE:
                sources.append(SourceFile(path))
            elif kind is PathKind.DIRECTORY:
                logger.info("Processing directory: %s", path)
                found = expand(path, recursive=recursive)
                if not found:
                    logger.warning("No files found in directory %s", path)
                sources.extend(SourceFile(p, base_dir=path) for p in found)
            else:
                raise DiscoveryError(path, "No such file or directory")
        except DiscoveryError as e:
            logger.debug("Error processing input %s", e)
            failures.append(DiscoveryFailure(path=e.path, reason=e.reason))

    return sources, failures
