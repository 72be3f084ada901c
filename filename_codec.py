#!/usr/bin/env python3
"""
Filename codec for the canonical document naming convention.

A document's metadata lives in its file name:

    {date}_{institution}_{name}_{page}.{ext}
    Example: 2020-04-03_Sparkasse_Statement_2.pdf

This module maps a file stem to a ParsedIdentity and back. It does no I/O.
"""

import re
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Mapping, Optional, Union


# Tried in this order. A compact date also starts with a valid year,
# so the year-only pattern must come last.
RE_WITH_HYPHENS = re.compile(r"^(?P<year>[0-9]{4})-(?P<month>[0-9]{2})-(?P<day>[0-9]{2})")
RE_NO_HYPHENS = re.compile(r"^(?P<year>[0-9]{4})(?P<month>[0-9]{2})(?P<day>[0-9]{2})")
RE_YEAR_ONLY = re.compile(r"^(?P<year>[0-9]{4})")
DATE_PATTERNS = (RE_WITH_HYPHENS, RE_NO_HYPHENS, RE_YEAR_ONLY)

RE_PARSE_PAGE = re.compile(r"([0-9]+)")

DEFAULT_PAGE = "1"
FIELD_SEPARATOR = "_"


class IncompleteIdentity(ValueError):
    """Raised when rendering an identity that lacks a required field."""

    def __init__(self, missing: list):
        self.missing = list(missing)
        super().__init__(f"Cannot render filename, missing: {', '.join(self.missing)}")


@dataclass(frozen=True)
class ParsedIdentity:
    """A document identity whose fields may or may not have been parseable."""

    date: Optional[str] = None
    institution: Optional[str] = None
    name: Optional[str] = None
    page: Optional[str] = None

    def is_parseable(self) -> bool:
        return (
            self.date is not None
            and self.institution is not None
            and self.name is not None
            and self.page is not None
        )

    @classmethod
    def from_declared(cls, declared: Mapping) -> "ParsedIdentity":
        """Build an identity from user-declared fields (form input, RPC params).

        Missing or blank values become None.
        """
        def clean(key):
            value = declared.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        return cls(
            date=clean("date"),
            institution=clean("institution"),
            name=clean("name"),
            page=clean("page"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def parse_date(text: str) -> Optional[str]:
    """Return the leading date of `text` in ISO 8601 form, or None."""
    for pattern in DATE_PATTERNS:
        match = pattern.match(text)
        if match:
            parts = match.groupdict()
            return "{}-{}-{}".format(
                parts["year"],
                parts.get("month") or "01",
                parts.get("day") or "01",
            )
    return None


def parse_page(text: str) -> Optional[str]:
    """Return the first run of digits in `text` (e.g. "pg20" -> "20")."""
    match = RE_PARSE_PAGE.search(text)
    return match.group(1) if match else None


def parse(stem: str) -> ParsedIdentity:
    """Split a file stem on underscores and decode each positional field."""
    tokens = stem.split(FIELD_SEPARATOR)

    def token(index):
        return tokens[index] if index < len(tokens) else None

    date_token = token(0)
    page_token = token(3)
    return ParsedIdentity(
        date=parse_date(date_token) if date_token is not None else None,
        institution=token(1),
        name=token(2),
        page=parse_page(page_token) if page_token is not None else None,
    )


def parse_path(path: Union[str, Path]) -> ParsedIdentity:
    """Parse the stem of a path."""
    path = Path(path)
    return parse(path.stem or path.name)


def render(identity: ParsedIdentity, ext: str) -> str:
    """Encode an identity as its canonical filename.

    Date, institution and name are required; page defaults to "1".
    The extension is lower-cased but otherwise taken as given.
    """
    missing = [
        field for field in ("date", "institution", "name")
        if getattr(identity, field) is None
    ]
    if missing:
        raise IncompleteIdentity(missing)

    page = identity.page if identity.page is not None else DEFAULT_PAGE
    stem = FIELD_SEPARATOR.join([identity.date, identity.institution, identity.name, page])
    return f"{stem}.{ext.lower()}"


def to_camelcase(text: str) -> str:
    """Collapse space-separated words into one CamelCase token.

    "hello this is a test" -> "HelloThisIsATest"
    """
    result = []
    start_of_word = True
    for c in text.strip():
        if c == " ":
            start_of_word = True
        elif start_of_word:
            # ASCII only: "ß".upper() would grow into "SS"
            result.append(c.upper() if c.isascii() else c)
            start_of_word = False
        else:
            result.append(c)
    return "".join(result)
