#!/usr/bin/env python3
"""
Catalog scanning and normalization checks.

The catalog is never stored: every call re-reads the directory and
classifies each eligible file against its own canonical name.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from filename_codec import ParsedIdentity, parse_path, render

logger = logging.getLogger("filecabinet")

DOCUMENT_EXTENSIONS = {"pdf", "jpg", "png"}
ARCHIVE_EXTENSION = "cocoon"


@dataclass(frozen=True)
class CatalogEntry:
    """One eligible file from a directory scan."""

    path: Path
    identity: ParsedIdentity
    normalized: bool

    @property
    def name(self) -> str:
        return self.path.name

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "identity": self.identity.to_dict(),
            "isNormalized": self.normalized,
        }


def extension(path: Union[str, Path]) -> str:
    """Lower-cased extension without the dot; empty string if there is none."""
    return Path(path).suffix[1:].lower()


def is_normalized(path: Union[str, Path]) -> bool:
    """True if the file name equals the canonical name of its parsed identity.

    Only looks at the path components, never at the disk.
    """
    path = Path(path)
    identity = parse_path(path)
    if not identity.is_parseable():
        return False
    # Exact string match; Path equality ignores case on Windows
    return render(identity, extension(path)) == path.name


def propose_rename(path: Union[str, Path]) -> Optional[Path]:
    """Canonical sibling path for a parseable file that is not yet normalized."""
    path = Path(path)
    identity = parse_path(path)
    if not identity.is_parseable() or is_normalized(path):
        return None
    return path.parent / render(identity, extension(path))


def list_files(directory: Union[str, Path], include_archives: bool = False) -> list:
    """List eligible documents directly inside `directory`, sorted by name.

    A missing directory is an empty catalog. Files without an extension
    are simply not eligible.
    """
    directory = Path(directory)
    if not directory.exists():
        logger.debug(f"Directory does not exist, empty catalog: {directory}")
        return []

    allowed = set(DOCUMENT_EXTENSIONS)
    if include_archives:
        allowed.add(ARCHIVE_EXTENSION)

    files = [
        child for child in directory.iterdir()
        if child.is_file() and extension(child) in allowed
    ]
    files.sort(key=lambda p: p.name)
    return files


def list_documents(directory: Union[str, Path], include_archives: bool = False) -> list:
    """Scan `directory` and classify every eligible file."""
    entries = [
        CatalogEntry(path=path, identity=parse_path(path), normalized=is_normalized(path))
        for path in list_files(directory, include_archives=include_archives)
    ]
    logger.debug(
        f"Scanned {directory}: {len(entries)} documents, "
        f"{sum(1 for e in entries if e.normalized)} normalized"
    )
    return entries


def normalize_directory(directory: Union[str, Path], apply: bool = False,
                        include_archives: bool = False) -> list:
    """Collect (old, new) rename proposals for a directory.

    With apply=True the renames are performed. Existing targets are
    never overwritten; those proposals are skipped. On a case-insensitive
    filesystem the target of a case-only rename is the file itself, so it
    is moved through a temporary name.
    """
    renames = []
    for path in list_files(directory, include_archives=include_archives):
        target = propose_rename(path)
        if target is None:
            continue
        if apply:
            if not target.exists():
                path.rename(target)
            elif target.samefile(path):
                staging = path.with_name(f".{path.name}.renaming")
                path.rename(staging)
                staging.rename(target)
            else:
                logger.warning(f"Skipping rename, target exists: {path.name} -> {target.name}")
                continue
            logger.info(f"Renamed: {path.name} -> {target.name}")
        renames.append((path, target))
    return renames
