#!/usr/bin/env python3
"""
Filecabinet UI - Streamlit interface for browsing and archiving scanned documents

Run with: streamlit run ui.py
Or:       python filecabinet.py --web

Pages:
1. Catalog - list documents, see which ones follow the naming convention
2. Archive - seal an uploaded scan under its canonical name
3. Restore - decrypt an archive back to its original file
"""

import io
import tempfile
from datetime import date
from pathlib import Path

import streamlit as st
from PIL import Image

from archive_store import ArchiveError, archive_name, ingest, restore
from catalog import ARCHIVE_EXTENSION, list_documents, list_files, normalize_directory
from filename_codec import IncompleteIdentity, ParsedIdentity, to_camelcase
from settings import get_settings

IMAGE_EXTENSIONS = {".jpg", ".png"}

# Page config
st.set_page_config(
    page_title="Filecabinet",
    page_icon=":material/inventory_2:",
    layout="wide",
)


@st.cache_data(show_spinner=False)
def generate_thumbnail(file_path: str, mtime: float, size: tuple = (240, 240)) -> bytes | None:
    """Generate a PNG thumbnail for an image document (mtime busts the cache)."""
    if Path(file_path).suffix.lower() not in IMAGE_EXTENSIONS:
        return None
    try:
        with Image.open(file_path) as img:
            img.thumbnail(size)
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            buf = io.BytesIO()
            img.save(buf, format="PNG")
            return buf.getvalue()
    except (OSError, Image.DecompressionBombError):
        return None


def filter_entries(entries: list, query: str, only_unnormalized: bool) -> list:
    """Filter catalog entries by a free-text query over name and identity fields."""
    query = query.strip().lower()
    result = []
    for entry in entries:
        if only_unnormalized and entry.normalized:
            continue
        if query:
            haystack = " ".join(
                [entry.name] + [v for v in entry.identity.to_dict().values() if v]
            ).lower()
            if query not in haystack:
                continue
        result.append(entry)
    return result


def render_catalog(target_dir: str, include_archives: bool):
    st.subheader("Catalog")

    col_search, col_toggle, col_refresh = st.columns([4, 2, 1])
    with col_search:
        query = st.text_input("Search", placeholder="institution, name, date...")
    with col_toggle:
        only_unnormalized = st.checkbox("Only non-normalized")
    with col_refresh:
        st.button("Refresh", use_container_width=True)

    entries = list_documents(target_dir, include_archives=include_archives)
    if not entries:
        st.info(f"No documents in {target_dir}")
        return

    shown = filter_entries(entries, query, only_unnormalized)
    normalized = sum(1 for e in entries if e.normalized)
    st.caption(f"{len(shown)} of {len(entries)} documents, {normalized} normalized")

    rows = [
        {
            "File": e.name,
            "Date": e.identity.date,
            "Institution": e.identity.institution,
            "Name": e.identity.name,
            "Page": e.identity.page,
            "Normalized": e.normalized,
        }
        for e in shown
    ]
    st.dataframe(rows, use_container_width=True, hide_index=True)

    images = [e for e in shown if e.path.suffix.lower() in IMAGE_EXTENSIONS]
    if images:
        with st.expander(f"Previews ({len(images)})"):
            cols = st.columns(4)
            for i, entry in enumerate(images):
                thumb = generate_thumbnail(str(entry.path), entry.path.stat().st_mtime)
                if thumb:
                    cols[i % 4].image(thumb, caption=entry.name)

    renames = normalize_directory(target_dir)
    if renames:
        with st.expander(f"Rename proposals ({len(renames)})"):
            for old, new in renames:
                st.text(f"{old.name} -> {new.name}")
            if st.button("Apply renames", type="primary"):
                applied = normalize_directory(target_dir, apply=True)
                st.success(f"Renamed {len(applied)} files")
                st.rerun()


def render_archive_form(archive_dir: str, passphrase: str | None):
    st.subheader("Archive a document")

    uploaded = st.file_uploader("Scanned document", type=["pdf", "jpg", "png"])
    with st.form("ingest"):
        col1, col2 = st.columns(2)
        with col1:
            doc_date = st.date_input("Date", value=date.today())
            institution = st.text_input("Institution", placeholder="e.g. Sparkasse")
        with col2:
            name = st.text_input("Name", placeholder="e.g. Account Statement")
            page = st.number_input("Page", min_value=1, value=1, step=1)
        overwrite = st.checkbox("Overwrite an existing archive", value=get_settings().overwrite_archives)
        submitted = st.form_submit_button("Seal", type="primary")

    declared = ParsedIdentity.from_declared({
        "date": doc_date.isoformat() if doc_date else None,
        "institution": to_camelcase(institution),
        "name": to_camelcase(name),
        "page": page,
    })
    try:
        st.caption(f"Will be stored as `{archive_name(declared)}`")
    except IncompleteIdentity:
        pass  # preview only shows once the form is complete

    if not submitted:
        return
    if uploaded is None:
        st.error("Choose a file to archive")
        return
    if not passphrase:
        st.error("No archive passphrase configured")
        return

    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp) / uploaded.name
        source.write_bytes(uploaded.getvalue())
        try:
            target = ingest(source, declared, archive_dir, passphrase, overwrite=overwrite)
        except (ArchiveError, IncompleteIdentity) as e:
            st.error(str(e))
            return
    st.success(f"Archived to {target}")


def render_restore_form(archive_dir: str, passphrase: str | None):
    st.subheader("Restore an archive")

    archives = list_files(archive_dir, include_archives=True)
    archives = [p for p in archives if p.suffix.lower() == f".{ARCHIVE_EXTENSION}"]
    if not archives:
        st.info(f"No archives in {archive_dir}")
        return

    with st.form("restore"):
        choice = st.selectbox("Archive", archives, format_func=lambda p: p.name)
        key = st.text_input("Passphrase", type="password",
                            help="Leave empty to use the configured passphrase")
        output_dir = st.text_input("Restore into", value=str(Path(archive_dir)))
        submitted = st.form_submit_button("Restore", type="primary")

    if not submitted:
        return
    key = key or passphrase
    if not key:
        st.error("Enter a passphrase")
        return
    try:
        restored = restore(choice, key, output_dir)
    except ArchiveError as e:
        st.error(f"{type(e).__name__}: {e}")
        return
    st.success(f"Restored to {restored}")


def main():
    settings = get_settings()

    with st.sidebar:
        st.title("Filecabinet")
        target_dir = st.text_input("Document directory", value=settings.target_dir)
        archive_dir = st.text_input("Archive directory", value=settings.archive_dir)
        include_archives = st.checkbox("Show archives in catalog", value=settings.include_archives)
        if st.button("Save as default", use_container_width=True):
            settings.update({
                "target_dir": target_dir,
                "archive_dir": archive_dir,
                "include_archives": include_archives,
            })
            valid, errors = settings.validate_directories()
            for error in errors:
                st.warning(error)
            if valid:
                st.toast("Settings saved")

    passphrase = settings.archive_passphrase
    catalog_tab, archive_tab, restore_tab = st.tabs(["Catalog", "Archive", "Restore"])
    with catalog_tab:
        render_catalog(target_dir, include_archives)
    with archive_tab:
        render_archive_form(archive_dir, passphrase)
    with restore_tab:
        render_restore_form(archive_dir, passphrase)


main()
