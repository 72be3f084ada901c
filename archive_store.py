#!/usr/bin/env python3
"""
Encrypted-at-rest storage for uploaded originals.

Each document is sealed into a single container named after its canonical
filename with the archive extension:

    {date}_{institution}_{name}_{page}.cocoon

Container layout:
    magic     : 4 bytes   -> b"FCAB"
    version   : 1 byte    -> 0x01
    salt      : 16 bytes  (PBKDF2-HMAC-SHA256)
    nonce     : 12 bytes
    ciphertext: remaining bytes (ChaCha20-Poly1305, header as associated data)

Sealed payload:
    ext_len   : 1 byte
    ext       : ext_len bytes, UTF-8, lower-cased original extension
    data      : the original document bytes

The original extension travels inside the container, so restoring a
document needs nothing but the archive and the passphrase.
"""

import logging
import os
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from catalog import ARCHIVE_EXTENSION, extension
from filename_codec import ParsedIdentity, render

logger = logging.getLogger("filecabinet")

MAGIC = b"FCAB"
VERSION = 1
SALT_SIZE = 16
NONCE_SIZE = 12
HEADER_SIZE = len(MAGIC) + 1 + SALT_SIZE + NONCE_SIZE
KDF_ITERATIONS = 100_000


class ArchiveError(Exception):
    """Base class for archive store failures."""


class SourceReadError(ArchiveError):
    """The input file (document or archive) could not be read."""


class TargetWriteError(ArchiveError):
    """The output file could not be written, or exists and overwrite is off."""


class AuthError(ArchiveError):
    """Wrong passphrase, or the container is corrupted."""


@dataclass(frozen=True)
class ArchivedDocument:
    data: bytes
    extension: str


def _derive_key(passphrase: Union[str, bytes], salt: bytes) -> bytes:
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(passphrase)


def seal(key: Union[str, bytes], plaintext: bytes) -> bytes:
    """Encrypt and authenticate `plaintext` under a passphrase."""
    salt = secrets.token_bytes(SALT_SIZE)
    nonce = secrets.token_bytes(NONCE_SIZE)
    header = MAGIC + bytes([VERSION]) + salt + nonce
    ciphertext = ChaCha20Poly1305(_derive_key(key, salt)).encrypt(nonce, plaintext, header)
    return header + ciphertext


def unseal(key: Union[str, bytes], blob: bytes) -> bytes:
    """Inverse of seal(). Raises AuthError rather than returning bad bytes."""
    if len(blob) < HEADER_SIZE or blob[:len(MAGIC)] != MAGIC:
        raise AuthError("Not a filecabinet archive")
    if blob[len(MAGIC)] != VERSION:
        raise AuthError(f"Unsupported archive version: {blob[len(MAGIC)]}")

    header = blob[:HEADER_SIZE]
    salt = header[len(MAGIC) + 1:len(MAGIC) + 1 + SALT_SIZE]
    nonce = header[-NONCE_SIZE:]
    try:
        return ChaCha20Poly1305(_derive_key(key, salt)).decrypt(nonce, blob[HEADER_SIZE:], header)
    except InvalidTag:
        raise AuthError("Wrong passphrase or corrupted archive") from None


def _pack_payload(data: bytes, ext: str) -> bytes:
    ext_bytes = ext.lower().encode("utf-8")
    if len(ext_bytes) > 255:
        raise ValueError(f"Extension too long: {ext}")
    return bytes([len(ext_bytes)]) + ext_bytes + data


def _unpack_payload(payload: bytes) -> ArchivedDocument:
    if not payload:
        raise AuthError("Archive payload is empty")
    ext_len = payload[0]
    if len(payload) < 1 + ext_len:
        raise AuthError("Archive payload is truncated")
    ext = payload[1:1 + ext_len].decode("utf-8", errors="replace")
    return ArchivedDocument(data=payload[1 + ext_len:], extension=ext)


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise SourceReadError(f"Cannot read {path}: {e}") from e


def _write_atomic(target: Path, data: bytes, overwrite: bool) -> None:
    """Write via a temp file in the same directory, then rename into place."""
    if target.exists() and not overwrite:
        raise TargetWriteError(f"Target already exists: {target}")
    if not target.parent.is_dir():
        raise TargetWriteError(f"Target directory does not exist: {target.parent}")

    try:
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".", suffix=".tmp")
    except OSError as e:
        raise TargetWriteError(f"Cannot write to {target.parent}: {e}") from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, target)
    except OSError as e:
        Path(tmp_name).unlink(missing_ok=True)
        raise TargetWriteError(f"Cannot write {target}: {e}") from e


def archive_name(declared: Union[ParsedIdentity, Mapping]) -> str:
    """Canonical archive file name for the declared metadata."""
    if not isinstance(declared, ParsedIdentity):
        declared = ParsedIdentity.from_declared(declared)
    return render(declared, ARCHIVE_EXTENSION)


def ingest(source_path: Union[str, Path], declared: Union[ParsedIdentity, Mapping],
           target_dir: Union[str, Path], key: Union[str, bytes], overwrite: bool = False) -> Path:
    """Seal a raw document into `target_dir` under its canonical name.

    The source file is left untouched. Existing archives are only replaced
    when overwrite=True.
    """
    source_path = Path(source_path)
    data = _read_bytes(source_path)
    target = Path(target_dir) / archive_name(declared)

    blob = seal(key, _pack_payload(data, extension(source_path)))
    _write_atomic(target, blob, overwrite)
    logger.info(f"Archived {source_path.name} -> {target.name} ({len(data)} bytes)")
    return target


def open_archive(archive_path: Union[str, Path], key: Union[str, bytes]) -> ArchivedDocument:
    """Unseal an archive, returning the document bytes and original extension."""
    archive_path = Path(archive_path)
    document = _unpack_payload(unseal(key, _read_bytes(archive_path)))
    logger.debug(f"Opened {archive_path.name} ({len(document.data)} bytes, .{document.extension})")
    return document


def extract(archive_path: Union[str, Path], key: Union[str, bytes]) -> bytes:
    """Return the original document bytes sealed in `archive_path`."""
    return open_archive(archive_path, key).data


def restore(archive_path: Union[str, Path], key: Union[str, bytes],
            output_dir: Union[str, Path], overwrite: bool = False) -> Path:
    """Write the plaintext of an archive to `output_dir` with its original extension."""
    archive_path = Path(archive_path)
    document = open_archive(archive_path, key)
    name = archive_path.stem
    if document.extension:
        name = f"{name}.{document.extension}"
    target = Path(output_dir) / name
    _write_atomic(target, document.data, overwrite)
    logger.info(f"Restored {archive_path.name} -> {target}")
    return target
