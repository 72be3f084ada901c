"""
Pytest configuration and shared fixtures for Filecabinet tests.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import settings as settings_module

TEST_PASSPHRASE = "correct horse battery staple"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def docs_dir(temp_dir: Path) -> Path:
    """Create a temporary flat document directory."""
    docs = temp_dir / "documents"
    docs.mkdir()
    return docs


@pytest.fixture
def archive_dir(temp_dir: Path) -> Path:
    """Create a temporary archive directory."""
    archive = temp_dir / "archive"
    archive.mkdir()
    return archive


@pytest.fixture
def sample_pdf_path(temp_dir: Path) -> Path:
    """Create a minimal raw scan outside the catalog."""
    # Placeholder bytes; the archive store never interprets content
    pdf_path = temp_dir / "scan0001.pdf"
    pdf_path.write_bytes(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\nplaceholder scan\n%%EOF")
    return pdf_path


@pytest.fixture
def populated_docs_dir(docs_dir: Path) -> Path:
    """A document directory with a mix of normalized and messy names."""
    for name in [
        "2020-04-03_Sparkasse_Statement_1.pdf",
        "20180530_TK_Invoice_pg2.pdf",
        "2019_Finanzamt_Notice_1.PDF",
        "report.pdf",
        "notes.txt",
        "README",
        "2021-01-15_Charite_BloodTest_3.png",
    ]:
        (docs_dir / name).write_bytes(b"content of " + name.encode())
    (docs_dir / "subdir.pdf").mkdir()
    return docs_dir


@pytest.fixture(autouse=True)
def reset_env_vars():
    """Reset environment variables before each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def isolated_settings(temp_dir: Path):
    """Point the settings file at a temp dir and replace the OS keychain."""
    keychain = {}

    def get_password(service, key):
        return keychain.get((service, key))

    def set_password(service, key, value):
        keychain[(service, key)] = value

    def delete_password(service, key):
        keychain.pop((service, key), None)

    os.environ["XDG_CONFIG_HOME"] = str(temp_dir / "config")
    os.environ.pop("FILECABINET_PASSPHRASE", None)
    os.environ.pop("TARGET_DIR", None)
    os.environ.pop("ARCHIVE_DIR", None)
    settings_module._settings = None

    with patch("settings.keyring") as mock_keyring:
        mock_keyring.get_password.side_effect = get_password
        mock_keyring.set_password.side_effect = set_password
        mock_keyring.delete_password.side_effect = delete_password
        yield keychain

    settings_module._settings = None


@pytest.fixture
def env_with_passphrase():
    """Provide the archive passphrase through the environment."""
    os.environ["FILECABINET_PASSPHRASE"] = TEST_PASSPHRASE
    return TEST_PASSPHRASE
