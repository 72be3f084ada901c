#!/usr/bin/env python3
"""
Settings management for Filecabinet.

Handles persistent user configuration stored in a JSON file.
Settings are stored in the user's config directory:
- macOS: ~/Library/Application Support/Filecabinet/settings.json
- Linux: ~/.config/Filecabinet/settings.json
- Windows: %APPDATA%/Filecabinet/settings.json

The archive passphrase is stored in the OS keychain (not in the JSON file).
"""

import os
import sys
import json
import logging
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from dotenv import load_dotenv

# Load environment variables from .env file (if it exists and is accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    pass  # .env not accessible, likely running as bundled app

logger = logging.getLogger("filecabinet")

# Service name for keychain storage
KEYCHAIN_SERVICE = "Filecabinet"

# Keys that should be stored in keychain instead of JSON
SECURE_KEYS = {"archive_passphrase"}

# Environment fallback for the passphrase (headless servers, CI)
PASSPHRASE_ENV = "FILECABINET_PASSPHRASE"


def get_secure_value(key: str) -> Optional[str]:
    """Get a secure value from OS keychain."""
    try:
        value = keyring.get_password(KEYCHAIN_SERVICE, key)
        return value if value else None
    except KeyringError as e:
        logger.debug(f"Keychain unavailable for {key}: {e}")
        return None


def set_secure_value(key: str, value: str) -> bool:
    """Set a secure value in OS keychain. Returns True on success."""
    try:
        if value:
            keyring.set_password(KEYCHAIN_SERVICE, key, value)
        else:
            # Delete the key if value is empty
            try:
                keyring.delete_password(KEYCHAIN_SERVICE, key)
            except PasswordDeleteError:
                pass  # Key doesn't exist, that's fine
        return True
    except KeyringError as e:
        logger.warning(f"Could not store {key} in keychain: {e}")
        return False


def delete_secure_value(key: str) -> bool:
    """Delete a secure value from OS keychain. Returns True on success."""
    try:
        keyring.delete_password(KEYCHAIN_SERVICE, key)
        return True
    except KeyringError:
        return False


def get_config_dir() -> Path:
    """Get the platform-appropriate config directory."""
    if sys.platform == "darwin":
        config_dir = Path.home() / "Library" / "Application Support" / "Filecabinet"
    elif sys.platform == "win32":
        appdata = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        config_dir = Path(appdata) / "Filecabinet"
    else:
        # Linux and others - follow XDG base directories
        xdg_config = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
        config_dir = Path(xdg_config) / "Filecabinet"

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_settings_path() -> Path:
    """Get path to the settings file."""
    return get_config_dir() / "settings.json"


# Default settings
DEFAULT_SETTINGS = {
    # Directory paths
    "target_dir": "",
    "archive_dir": "",  # Same as target_dir if empty

    # Catalog
    "include_archives": False,

    # Archive store
    "archive_passphrase": "",
    "overwrite_archives": False,
}


class Settings:
    """Manage application settings with persistence.

    The passphrase is stored in the OS keychain.
    Other settings are stored in a JSON file.
    """

    def __init__(self):
        self._settings = DEFAULT_SETTINGS.copy()
        self._load()

    def _load(self):
        """Load settings from disk."""
        settings_path = get_settings_path()
        if settings_path.exists():
            try:
                with open(settings_path, 'r') as f:
                    saved = json.load(f)
                    # Merge with defaults (in case new settings were added)
                    self._settings.update(saved)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Could not load settings: {e}")

    def save(self):
        """Save settings to disk (excluding secure keys)."""
        settings_path = get_settings_path()
        try:
            save_data = {k: v for k, v in self._settings.items() if k not in SECURE_KEYS}
            with open(settings_path, 'w') as f:
                json.dump(save_data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save settings: {e}")

    def get(self, key: str, default=None):
        """Get a setting value. Secure keys are fetched from keychain."""
        if key in SECURE_KEYS:
            value = get_secure_value(key)
            if value:
                return value
            # Keychain unavailable: in-memory copy for this session only
            return self._settings.get(key) or default
        return self._settings.get(key, default)

    def set(self, key: str, value):
        """Set a setting value. Secure keys are stored in keychain."""
        if key in SECURE_KEYS:
            if set_secure_value(key, value):
                self._settings[key] = ""
            else:
                # Fallback to in-memory if keychain unavailable
                self._settings[key] = value
        else:
            self._settings[key] = value
        self.save()

    def update(self, updates: dict):
        """Update multiple settings at once and save."""
        for key, value in updates.items():
            if key in SECURE_KEYS and set_secure_value(key, value):
                self._settings[key] = ""
            else:
                self._settings[key] = value
        self.save()

    def reset(self):
        """Reset all settings to defaults."""
        for key in SECURE_KEYS:
            delete_secure_value(key)
        self._settings = DEFAULT_SETTINGS.copy()
        self.save()

    @property
    def target_dir(self) -> str:
        """Get the document directory.

        Priority: Saved setting (UI) > Environment variable > Current directory
        """
        saved = self._settings.get("target_dir")
        if saved:
            return saved
        env_target = os.environ.get("TARGET_DIR")
        if env_target:
            return env_target
        return str(Path.cwd())

    @property
    def archive_dir(self) -> str:
        """Get the archive directory.

        Priority: Saved setting (UI) > Environment variable > target_dir
        """
        saved = self._settings.get("archive_dir")
        if saved:
            return saved
        env_archive = os.environ.get("ARCHIVE_DIR")
        if env_archive:
            return env_archive
        return self.target_dir

    @property
    def include_archives(self) -> bool:
        return bool(self._settings.get("include_archives", False))

    @property
    def overwrite_archives(self) -> bool:
        return bool(self._settings.get("overwrite_archives", False))

    @property
    def archive_passphrase(self) -> Optional[str]:
        """Passphrase for sealing archives.

        Priority: Keychain > Environment variable. None if unset.
        """
        value = self.get("archive_passphrase")
        if value:
            return value
        return os.environ.get(PASSPHRASE_ENV) or None

    def validate_directories(self) -> tuple[bool, list[str]]:
        """Validate that configured directories exist and are writable.

        Returns (is_valid, list_of_errors)
        """
        errors = []
        for label, directory in (("Target", self.target_dir), ("Archive", self.archive_dir)):
            path = Path(directory)
            if path.exists():
                if not path.is_dir():
                    errors.append(f"{label} path exists but is not a directory: {path}")
                elif not os.access(path, os.W_OK):
                    errors.append(f"{label} directory is not writable: {path}")
            else:
                parent = path.parent
                if parent.exists() and not os.access(parent, os.W_OK):
                    errors.append(f"Cannot create {label.lower()} directory (parent not writable): {path}")

        return len(errors) == 0, errors

    def to_dict(self) -> dict:
        """Export settings as a dictionary (never includes secure values)."""
        return {k: v for k, v in self._settings.items() if k not in SECURE_KEYS}


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Force reload settings from disk."""
    global _settings
    _settings = Settings()
    return _settings
