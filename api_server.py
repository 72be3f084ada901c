#!/usr/bin/env python3
"""
JSON-RPC API Server for desktop front ends.

Reads JSON commands from stdin, calls into the filecabinet core,
and writes JSON responses to stdout. Designed for use with Electron's
child_process spawn.

Protocol:
  - Each request is a single line of JSON
  - Each response is a single line of JSON
  - Format: {"id": "uuid", "method": "...", "params": {...}}
  - Response: {"id": "uuid", "result": {...}, "error": null, "errorType": null}

Methods:
  - files:list - List documents in a directory with their parsed identity
  - files:normalize - Propose (or apply) canonical renames
  - documents:ingest - Seal a raw file into the archive directory
  - documents:extract - Restore the original from an archive
  - settings:get - Get all settings
  - settings:set - Update a setting
"""

import json
import sys
import logging
import traceback
from typing import Any, Optional

from archive_store import ArchiveError, ingest, restore
from catalog import list_documents, normalize_directory
from filecabinet import setup_logging
from filename_codec import IncompleteIdentity, ParsedIdentity, to_camelcase
from settings import get_settings, SECURE_KEYS

# Console handler writes to stderr, stdout carries the protocol
logger = logging.getLogger("filecabinet")


def send_response(request_id: str, result: Any = None, error: Optional[str] = None,
                  error_type: Optional[str] = None):
    """Send a JSON response to stdout."""
    response = {
        "id": request_id,
        "result": result,
        "error": error,
        "errorType": error_type,
    }
    # Write as single line, then flush
    print(json.dumps(response), flush=True)


def handle_files_list(params: dict) -> dict:
    """List documents in a directory. A missing directory is an empty list."""
    settings = get_settings()
    folder = params.get("folder") or settings.target_dir
    include_archives = params.get("includeArchives", settings.include_archives)

    entries = list_documents(folder, include_archives=include_archives)
    files = [entry.to_dict() for entry in entries]
    return {
        "folder": folder,
        "files": files,
        "count": len(files),
        "normalizedCount": sum(1 for f in files if f["isNormalized"]),
    }


def handle_files_normalize(params: dict) -> dict:
    """Propose canonical names; rename only when apply is true."""
    folder = params.get("folder") or get_settings().target_dir
    apply = bool(params.get("apply", False))

    renames = normalize_directory(folder, apply=apply)
    return {
        "applied": apply,
        "renames": [{"from": str(old), "to": str(new)} for old, new in renames],
    }


def handle_documents_ingest(params: dict) -> dict:
    """Seal a raw file under its canonical name."""
    file_path = params.get("filePath")
    metadata = params.get("metadata") or {}

    if not file_path:
        raise ValueError("filePath parameter is required")

    settings = get_settings()
    passphrase = settings.archive_passphrase
    if not passphrase:
        raise ValueError("No archive passphrase configured")

    declared = ParsedIdentity.from_declared(metadata)
    if params.get("camelCase", True):
        declared = ParsedIdentity(
            date=declared.date,
            institution=to_camelcase(declared.institution) if declared.institution else None,
            name=to_camelcase(declared.name) if declared.name else None,
            page=declared.page,
        )

    target_dir = params.get("targetDir") or settings.archive_dir
    overwrite = params.get("overwrite", settings.overwrite_archives)
    archive_path = ingest(file_path, declared, target_dir, passphrase, overwrite=bool(overwrite))

    return {
        "success": True,
        "archivePath": str(archive_path),
        "identity": declared.to_dict(),
    }


def handle_documents_extract(params: dict) -> dict:
    """Restore the original document from an archive."""
    archive_path = params.get("archivePath")
    if not archive_path:
        raise ValueError("archivePath parameter is required")

    passphrase = params.get("passphrase") or get_settings().archive_passphrase
    if not passphrase:
        raise ValueError("No archive passphrase configured")

    output_dir = params.get("outputDir") or get_settings().target_dir
    restored = restore(archive_path, passphrase, output_dir, overwrite=bool(params.get("overwrite", False)))

    return {"success": True, "restoredPath": str(restored)}


def handle_settings_get(params: dict) -> dict:
    """Get all settings."""
    settings = get_settings()
    _, directory_errors = settings.validate_directories()

    return {
        "target_dir": settings.target_dir,
        "archive_dir": settings.archive_dir,
        "include_archives": settings.include_archives,
        "overwrite_archives": settings.overwrite_archives,
        "has_passphrase": bool(settings.archive_passphrase),
        "directory_errors": directory_errors,
    }


def handle_settings_set(params: dict) -> dict:
    """Update a setting."""
    key = params.get("key")
    value = params.get("value")

    if not key:
        raise ValueError("key parameter is required")

    settings = get_settings()
    settings.set(key, value)

    return {"success": True, "key": key, "secure": key in SECURE_KEYS}


# Method dispatcher
METHODS = {
    "files:list": handle_files_list,
    "files:normalize": handle_files_normalize,
    "documents:ingest": handle_documents_ingest,
    "documents:extract": handle_documents_extract,
    "settings:get": handle_settings_get,
    "settings:set": handle_settings_set,
}


def handle_request(request: dict) -> None:
    """Handle a single JSON-RPC request."""
    request_id = request.get("id", "unknown")
    method = request.get("method")
    params = request.get("params", {})

    if not method:
        send_response(request_id, error="method is required")
        return

    if method not in METHODS:
        send_response(request_id, error=f"Unknown method: {method}")
        return

    try:
        result = METHODS[method](params)
        send_response(request_id, result=result)
    except (ArchiveError, IncompleteIdentity) as e:
        # Typed so the caller can tell a wrong passphrase from a missing file
        logger.info(f"{method} failed: {type(e).__name__}: {e}")
        send_response(request_id, error=str(e), error_type=type(e).__name__)
    except Exception as e:
        logger.debug(f"Error handling {method}: {traceback.format_exc()}")
        send_response(request_id, error=str(e), error_type="Error")


def main():
    """Main loop: read JSON from stdin, process, write JSON to stdout."""
    setup_logging()
    logger.debug("API server starting...")

    # Send ready signal
    send_response("__ready__", result={"status": "ready", "version": "0.2.1"})

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue

        try:
            request = json.loads(line)
            handle_request(request)
        except json.JSONDecodeError as e:
            logger.debug(f"Invalid JSON: {e}")
            send_response("__error__", error=f"Invalid JSON: {e}")


if __name__ == "__main__":
    main()
