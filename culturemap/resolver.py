"""Best-effort resolution of free-text references into organization ids.

Precedents name the parties involved and the things they connect to as prose
rather than as foreign keys, so the links are inferred at read time:

- ``involved`` is a comma-separated party list where entries may carry
  parenthetical annotations, e.g. ``"Cache (local funder), City of Bentonville"``.
  Each entry is matched case-insensitively against organization names.
- ``connects_to`` is narrative text. Capitalized phrases are recovered as
  display names only; they are never turned into ids.

Every function here returns empty results for empty or malformed input and
never raises.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from culturemap.records import Organization, Reference, Resolved, Unresolved

log = logging.getLogger(__name__)

_PARENTHETICAL_RE = re.compile(r"\([^()]*\)")
_CONNECTORS = ("of", "the", "for", "and", "in")
_CAP_WORD = r"[A-Z][\w'&-]*"
_PROPER_NOUN_RE = re.compile(
    rf"\b{_CAP_WORD}(?:\s+(?:(?:{'|'.join(_CONNECTORS)})\s+)*{_CAP_WORD})*"
)

MIN_CANDIDATE_LENGTH = 4


def normalize_name(name: str | None) -> str:
    if not isinstance(name, str):
        return ""
    return " ".join(name.split()).lower()


def build_name_index(organizations: Iterable[Organization]) -> dict[str, str]:
    """Lowercased organization name -> id. The first organization wins on duplicates."""
    index: dict[str, str] = {}
    for org in organizations:
        key = normalize_name(org.name)
        if key:
            index.setdefault(key, org.id)
    return index


def split_involved(text: str | None) -> list[str]:
    """Split an involved-parties field into bare party names."""
    if not isinstance(text, str) or not text.strip():
        return []
    text = _PARENTHETICAL_RE.sub("", text)
    parties = []
    for token in text.split(","):
        # Unbalanced "(" swallows the rest of the entry
        token = token.split("(", 1)[0].replace(")", "").strip()
        if token:
            parties.append(token)
    return parties


def resolve_involved(text: str | None, name_index: dict[str, str]) -> list[Reference]:
    refs: list[Reference] = []
    for party in split_involved(text):
        org_id = name_index.get(normalize_name(party))
        refs.append(Resolved(org_id) if org_id else Unresolved(party))
    return refs


def parse_involved(text: str | None, name_index: dict[str, str]) -> list[str]:
    """Organization ids named in an involved-parties field, in order, without repeats."""
    ids: list[str] = []
    unmatched = 0
    for ref in resolve_involved(text, name_index):
        if isinstance(ref, Resolved):
            if ref.id not in ids:
                ids.append(ref.id)
        else:
            unmatched += 1
    if unmatched:
        log.debug("Dropped %d unmatched involved parties", unmatched)
    return ids


def extract_candidate_names(text: str | None, min_length: int = MIN_CANDIDATE_LENGTH) -> list[str]:
    """Capitalized phrases in *text* that look like names.

    A phrase is one or more capitalized words, optionally joined by the
    connector words of/the/for/and/in. Phrases shorter than *min_length* are
    dropped so initials and short acronyms do not pass as names. The heuristic
    over-matches sentence-initial words and misses lowercase names.
    """
    if not isinstance(text, str) or not text:
        return []
    seen: set[str] = set()
    names: list[str] = []
    for match in _PROPER_NOUN_RE.finditer(text):
        phrase = " ".join(match.group(0).split()).strip("'-&")
        if len(phrase) < min_length:
            continue
        key = phrase.casefold()
        if key in seen:
            continue
        seen.add(key)
        names.append(phrase)
    return names
