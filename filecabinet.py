#!/usr/bin/env python3
"""
Filecabinet - A relatively secure way to manage scanned documents.

Documents live in a flat directory and carry their metadata in the name:

    {date}_{institution}_{name}_{page}.{ext}

Originals can be sealed into encrypted .cocoon archives under the same name.

Usage:
    python filecabinet.py -d ~/scans                    # list the catalog
    python filecabinet.py -d ~/scans --normalize        # preview renames
    python filecabinet.py -d ~/scans --ingest scan.pdf --date 2020-04-03 \\
        --institution Sparkasse --name Statement --page 2
    python filecabinet.py --extract ~/scans/2020-04-03_Sparkasse_Statement_2.cocoon -o ./out
    python filecabinet.py -d ~/scans --web              # launch the web UI
"""

import os
import sys
import socket
import argparse
import logging
import subprocess
import webbrowser
from pathlib import Path

import yaml

from archive_store import ArchiveError, ingest, restore
from catalog import list_documents, normalize_directory
from filename_codec import IncompleteIdentity, ParsedIdentity, parse_date, parse_page, to_camelcase
from settings import get_settings


# ==============================================================================
# CONFIGURATION LOADING
# ==============================================================================

def load_config() -> dict:
    """Load configuration from config.yaml, with fallbacks to environment variables."""
    config = {
        "paths": {
            "target_dir": os.getenv("TARGET_DIR", ""),
            "archive_dir": os.getenv("ARCHIVE_DIR", ""),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file": os.getenv("LOG_FILE", ""),
        },
        "web": {
            "port": None,  # None: pick a free port
        },
    }

    # Try to load from config.yaml
    config_paths = [
        Path(__file__).parent / "config.local.yaml",  # Local overrides first
        Path(__file__).parent / "config.yaml",
    ]

    for config_path in config_paths:
        if config_path.exists():
            try:
                with open(config_path, 'r') as f:
                    yaml_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                print(f"Warning: Could not load {config_path}: {e}", file=sys.stderr)
                continue

            for section in ("paths", "logging", "web"):
                for key, value in (yaml_config.get(section) or {}).items():
                    if value in (None, ""):
                        continue
                    if section == "paths":
                        value = os.path.expanduser(value)
                    config[section][key] = value

            break  # Use first found config

    return config


# Load global config
CONFIG = load_config()


# ==============================================================================
# LOGGING CONFIGURATION
# ==============================================================================

def setup_logging(level: str = None, log_file: str = None) -> logging.Logger:
    """Configure the shared "filecabinet" logger."""
    level = (level or CONFIG["logging"]["level"]).upper()
    log_file = log_file if log_file is not None else CONFIG["logging"]["file"]

    logger = logging.getLogger("filecabinet")
    logger.setLevel(getattr(logging, level, logging.INFO))

    # Prevent duplicate handlers on reimport
    if logger.handlers:
        return logger

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_format = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    # File handler (if LOG_FILE is set)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s"
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger


# Initialize logger
logger = setup_logging()


def resolve_target_dir(cli_value: str = "") -> str:
    """CLI flag > config.yaml / environment > saved settings."""
    return cli_value or CONFIG["paths"]["target_dir"] or get_settings().target_dir


def resolve_archive_dir(target_dir: str) -> str:
    configured = CONFIG["paths"]["archive_dir"] or get_settings().get("archive_dir")
    return configured or target_dir


# ==============================================================================
# COMMANDS
# ==============================================================================

def print_catalog(directory: str, include_archives: bool) -> int:
    entries = list_documents(directory, include_archives=include_archives)
    if not entries:
        print(f"📭 No documents in {directory}")
        return 0

    print(f"📂 {directory}")
    for entry in entries:
        marker = "✅" if entry.normalized else "⚠️ "
        print(f"  {marker} {entry.name}")

    normalized = sum(1 for e in entries if e.normalized)
    print(f"\n{len(entries)} documents, {normalized} normalized")
    return 0


def run_normalize(directory: str, apply: bool) -> int:
    renames = normalize_directory(directory, apply=apply)
    if not renames:
        print("✅ Nothing to rename")
        return 0

    verb = "Renamed" if apply else "Would rename"
    for old, new in renames:
        print(f"  {verb}: {old.name} -> {new.name}")
    if not apply:
        print("\nRun again with --apply to rename.")
    return 0


def run_ingest(args, archive_dir: str) -> int:
    passphrase = get_settings().archive_passphrase
    if not passphrase:
        print("❌ No archive passphrase configured (set FILECABINET_PASSPHRASE or save one in settings)",
              file=sys.stderr)
        return 1

    # Accept the same spellings the catalog parses, store the canonical form
    date = parse_date(args.date) if args.date else None
    if args.date and date is None:
        print(f"❌ Unrecognized date: {args.date} (expected YYYY-MM-DD, YYYYMMDD or YYYY)", file=sys.stderr)
        return 1
    page = parse_page(args.page) if args.page else None
    if args.page and page is None:
        print(f"❌ Unrecognized page: {args.page} (expected a number such as 2 or pg2)", file=sys.stderr)
        return 1

    declared = ParsedIdentity(
        date=date,
        institution=to_camelcase(args.institution) if args.institution else None,
        name=to_camelcase(args.name) if args.name else None,
        page=page,
    )
    overwrite = args.overwrite or get_settings().overwrite_archives
    try:
        target = ingest(args.ingest, declared, archive_dir, passphrase, overwrite=overwrite)
    except (ArchiveError, IncompleteIdentity) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(f"🔒 Archived to: {target}")
    return 0


def run_extract(args) -> int:
    passphrase = get_settings().archive_passphrase
    if not passphrase:
        print("❌ No archive passphrase configured", file=sys.stderr)
        return 1

    output_dir = args.output or str(Path(args.extract).parent)
    try:
        target = restore(args.extract, passphrase, output_dir, overwrite=args.overwrite)
    except ArchiveError as e:
        print(f"❌ {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    print(f"🔓 Restored to: {target}")
    return 0


def get_free_port() -> int:
    """Find a free port to run the server on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('', 0))
        return s.getsockname()[1]


def launch_web(target_dir: str, port: int = None) -> int:
    """Run the Streamlit UI against `target_dir` and open a browser."""
    port = port or CONFIG["web"]["port"] or get_free_port()
    ui_path = Path(__file__).parent / "ui.py"
    env = os.environ.copy()
    env["TARGET_DIR"] = target_dir

    cmd = [
        sys.executable, "-m", "streamlit", "run", str(ui_path),
        "--server.port", str(port),
        "--server.headless", "true",
    ]
    logger.info(f"Starting web UI on http://localhost:{port}")
    process = subprocess.Popen(cmd, env=env)
    webbrowser.open(f"http://localhost:{port}")
    try:
        return process.wait()
    except KeyboardInterrupt:
        process.terminate()
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filecabinet",
        description="Filecabinet - A relatively secure solution to managing scanned files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Naming convention
=================
  {date}_{institution}_{name}_{page}.{ext}
  Example: 2020-04-03_Sparkasse_Statement_2.pdf

Dates may be written 2020-04-03, 20200403 or 2020 (-> 2020-01-01).
Sealed originals use the same name with the .cocoon extension.
        """
    )
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Sets the level of verbosity")
    parser.add_argument("--web", "-w", action="store_true", help="Launches the web server.")
    parser.add_argument("--target-directory", "-d", metavar="DIR", default="",
                        help="Target directory for archival.")
    parser.add_argument("--archives", action="store_true",
                        help="Include sealed .cocoon archives in the listing")

    parser.add_argument("--normalize", action="store_true",
                        help="Propose canonical names for parseable documents")
    parser.add_argument("--apply", action="store_true", help="With --normalize: perform the renames")

    parser.add_argument("--ingest", metavar="FILE", help="Seal FILE into the archive directory")
    parser.add_argument("--date", help="Document date (YYYY-MM-DD, YYYYMMDD or YYYY)")
    parser.add_argument("--institution", help="Issuing institution")
    parser.add_argument("--name", help="Document name")
    parser.add_argument("--page", help="Page number, e.g. 2 or pg2 (default: 1)")
    parser.add_argument("--overwrite", action="store_true",
                        help="Replace an existing archive or restored file")

    parser.add_argument("--extract", metavar="ARCHIVE", help="Restore the original from ARCHIVE")
    parser.add_argument("--output", "-o", metavar="DIR",
                        help="With --extract: output directory (default: next to the archive)")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)

    if args.apply and not args.normalize:
        parser.error("--apply requires --normalize")

    target_dir = resolve_target_dir(args.target_directory)

    if args.web:
        return launch_web(target_dir)
    if args.extract:
        return run_extract(args)
    if args.ingest:
        return run_ingest(args, resolve_archive_dir(target_dir))
    if args.normalize:
        return run_normalize(target_dir, args.apply)

    include_archives = args.archives or get_settings().include_archives
    return print_catalog(target_dir, include_archives)


if __name__ == "__main__":
    sys.exit(main())
