"""
Tests for the encrypted archive store.
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from archive_store import (
    ArchiveError,
    AuthError,
    SourceReadError,
    TargetWriteError,
    archive_name,
    extract,
    ingest,
    open_archive,
    restore,
    seal,
    unseal,
)
from catalog import list_documents
from filename_codec import IncompleteIdentity, ParsedIdentity

PASSPHRASE = "s3cret"

DECLARED = {
    "date": "2020-04-03",
    "institution": "Sparkasse",
    "name": "Statement",
    "page": "2",
}


class TestSealPrimitive:
    """Tests for the seal/unseal container."""

    def test_round_trip(self):
        blob = seal(PASSPHRASE, b"hello")
        assert blob != b"hello"
        assert unseal(PASSPHRASE, blob) == b"hello"

    def test_bytes_key(self):
        blob = seal(b"raw key", b"data")
        assert unseal("raw key", blob) == b"data"

    def test_random_salt_and_nonce(self):
        assert seal(PASSPHRASE, b"same") != seal(PASSPHRASE, b"same")

    def test_wrong_key(self):
        blob = seal(PASSPHRASE, b"hello")
        with pytest.raises(AuthError):
            unseal("wrong", blob)

    def test_tampered_ciphertext(self):
        blob = bytearray(seal(PASSPHRASE, b"hello world"))
        blob[-1] ^= 0x01
        with pytest.raises(AuthError):
            unseal(PASSPHRASE, bytes(blob))

    def test_tampered_header(self):
        blob = bytearray(seal(PASSPHRASE, b"hello world"))
        blob[10] ^= 0x01  # inside the salt
        with pytest.raises(AuthError):
            unseal(PASSPHRASE, bytes(blob))

    def test_foreign_data(self):
        with pytest.raises(AuthError):
            unseal(PASSPHRASE, b"%PDF-1.4 not an archive at all, just a document")

    def test_truncated(self):
        with pytest.raises(AuthError):
            unseal(PASSPHRASE, seal(PASSPHRASE, b"x")[:20])

    def test_errors_share_base_class(self):
        assert issubclass(AuthError, ArchiveError)
        assert issubclass(SourceReadError, ArchiveError)
        assert issubclass(TargetWriteError, ArchiveError)


class TestIngest:
    """Tests for sealing documents into the archive directory."""

    def test_canonical_archive_name(self, sample_pdf_path: Path, archive_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        assert target == archive_dir / "2020-04-03_Sparkasse_Statement_2.cocoon"
        assert target.exists()

    def test_source_left_untouched(self, sample_pdf_path: Path, archive_dir: Path):
        original = sample_pdf_path.read_bytes()
        ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        assert sample_pdf_path.read_bytes() == original

    def test_plaintext_not_on_disk(self, sample_pdf_path: Path, archive_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        assert b"placeholder scan" not in target.read_bytes()

    def test_page_defaults_to_one(self, sample_pdf_path: Path, archive_dir: Path):
        declared = dict(DECLARED, page="")
        target = ingest(sample_pdf_path, declared, archive_dir, PASSPHRASE)

        assert target.name == "2020-04-03_Sparkasse_Statement_1.cocoon"

    def test_accepts_parsed_identity(self, sample_pdf_path: Path, archive_dir: Path):
        identity = ParsedIdentity("2019-01-01", "TK", "Invoice", "3")
        target = ingest(sample_pdf_path, identity, archive_dir, PASSPHRASE)

        assert target.name == "2019-01-01_TK_Invoice_3.cocoon"

    def test_incomplete_metadata(self, sample_pdf_path: Path, archive_dir: Path):
        with pytest.raises(IncompleteIdentity):
            ingest(sample_pdf_path, {"date": "2020-04-03"}, archive_dir, PASSPHRASE)
        assert list(archive_dir.iterdir()) == []

    def test_missing_source(self, temp_dir: Path, archive_dir: Path):
        with pytest.raises(SourceReadError):
            ingest(temp_dir / "missing.pdf", DECLARED, archive_dir, PASSPHRASE)

    def test_missing_target_dir(self, sample_pdf_path: Path, temp_dir: Path):
        with pytest.raises(TargetWriteError):
            ingest(sample_pdf_path, DECLARED, temp_dir / "no-such-dir", PASSPHRASE)

    def test_refuses_overwrite_by_default(self, sample_pdf_path: Path, archive_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)
        before = target.read_bytes()

        with pytest.raises(TargetWriteError):
            ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)
        assert target.read_bytes() == before

    def test_overwrite_opt_in(self, sample_pdf_path: Path, archive_dir: Path, temp_dir: Path):
        ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)
        replacement = temp_dir / "rescan.jpg"
        replacement.write_bytes(b"second scan")

        target = ingest(replacement, DECLARED, archive_dir, PASSPHRASE, overwrite=True)

        assert extract(target, PASSPHRASE) == b"second scan"

    def test_no_temp_files_left(self, sample_pdf_path: Path, archive_dir: Path):
        ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        assert [p.name for p in archive_dir.iterdir()] == ["2020-04-03_Sparkasse_Statement_2.cocoon"]

    def test_archive_is_normalized_in_catalog(self, sample_pdf_path: Path, archive_dir: Path):
        ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        entries = list_documents(archive_dir, include_archives=True)
        assert len(entries) == 1
        assert entries[0].normalized is True


class TestExtract:
    """Tests for unsealing archives."""

    def test_byte_identical(self, sample_pdf_path: Path, archive_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        assert extract(target, PASSPHRASE) == sample_pdf_path.read_bytes()

    def test_empty_document(self, temp_dir: Path, archive_dir: Path):
        empty = temp_dir / "empty.png"
        empty.write_bytes(b"")
        target = ingest(empty, DECLARED, archive_dir, PASSPHRASE)

        assert extract(target, PASSPHRASE) == b""

    def test_wrong_key(self, sample_pdf_path: Path, archive_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        with pytest.raises(AuthError):
            extract(target, "not the passphrase")

    def test_missing_archive_is_read_error(self, archive_dir: Path):
        """A missing file is distinguishable from a wrong passphrase."""
        with pytest.raises(SourceReadError):
            extract(archive_dir / "2020-04-03_A_B_1.cocoon", PASSPHRASE)

    def test_corrupted_archive(self, archive_dir: Path):
        bogus = archive_dir / "2020-04-03_A_B_1.cocoon"
        bogus.write_bytes(b"garbage" * 10)

        with pytest.raises(AuthError):
            extract(bogus, PASSPHRASE)

    def test_original_extension_recovered(self, temp_dir: Path, archive_dir: Path):
        scan = temp_dir / "IMG_0042.JPG"
        scan.write_bytes(b"\xff\xd8\xff fake jpeg")
        target = ingest(scan, DECLARED, archive_dir, PASSPHRASE)

        document = open_archive(target, PASSPHRASE)
        assert document.extension == "jpg"
        assert document.data == b"\xff\xd8\xff fake jpeg"


class TestRestore:
    """Tests for writing the plaintext back to disk."""

    def test_restore_with_original_extension(self, sample_pdf_path: Path, archive_dir: Path,
                                             docs_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        restored = restore(target, PASSPHRASE, docs_dir)

        assert restored == docs_dir / "2020-04-03_Sparkasse_Statement_2.pdf"
        assert restored.read_bytes() == sample_pdf_path.read_bytes()

    def test_restore_refuses_overwrite(self, sample_pdf_path: Path, archive_dir: Path,
                                       docs_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)
        restore(target, PASSPHRASE, docs_dir)

        with pytest.raises(TargetWriteError):
            restore(target, PASSPHRASE, docs_dir)
        restore(target, PASSPHRASE, docs_dir, overwrite=True)

    def test_restore_wrong_key_writes_nothing(self, sample_pdf_path: Path, archive_dir: Path,
                                              docs_dir: Path):
        target = ingest(sample_pdf_path, DECLARED, archive_dir, PASSPHRASE)

        with pytest.raises(AuthError):
            restore(target, "wrong", docs_dir)
        assert list(docs_dir.iterdir()) == []


class TestArchiveName:
    """Tests for archive naming."""

    def test_uses_archive_extension(self):
        assert archive_name(DECLARED) == "2020-04-03_Sparkasse_Statement_2.cocoon"

    def test_incomplete(self):
        with pytest.raises(IncompleteIdentity):
            archive_name({"institution": "Sparkasse"})
