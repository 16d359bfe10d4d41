"""BibTeX helpers: loading/writing files and converting entries to drafts."""

from __future__ import annotations

import os
import re
import tempfile
from typing import Any

import bibtexparser
from bibtexparser.bibdatabase import BibDatabase
from bibtexparser.bparser import BibTexParser
from bibtexparser.bwriter import BibTexWriter

from metadata_scraper.models import PaperDraft, PubType
from metadata_scraper.utils import extract_arxiv_id_from_text, is_empty, latex_to_plain

ENTRYTYPE_TO_PUBTYPE = {
    "article": PubType.JOURNAL,
    "inproceedings": PubType.CONFERENCE,
    "conference": PubType.CONFERENCE,
    "proceedings": PubType.CONFERENCE,
    "book": PubType.BOOK,
    "inbook": PubType.BOOK,
    "incollection": PubType.BOOK,
}

PUBTYPE_TO_ENTRYTYPE = {
    PubType.JOURNAL: "article",
    PubType.CONFERENCE: "inproceedings",
    PubType.BOOK: "book",
    PubType.OTHER: "misc",
}

# Field that carries the venue for each entry type we write
VENUE_FIELD = {
    "article": "journal",
    "inproceedings": "booktitle",
    "book": "publisher",
    "misc": "howpublished",
}


# ------------- IO Helpers -------------
class BibLoader:
    def __init__(self) -> None:
        self.parser = BibTexParser(common_strings=True, ignore_nonstandard_types=False)
        self.parser.customization = None

    def load_file(self, path: str) -> BibDatabase:
        with open(path, encoding="utf-8") as f:
            return bibtexparser.load(f, parser=self.parser)

    def loads(self, text: str) -> BibDatabase:
        return bibtexparser.loads(text, parser=self.parser)


class BibWriter:
    def __init__(self) -> None:
        self.writer = BibTexWriter()
        self.writer.indent = "  "
        self.writer.order_entries_by = None
        self.writer.comma_first = False

    def dumps(self, db: BibDatabase) -> str:
        return bibtexparser.dumps(db, writer=self.writer)

    def dump_to_file(self, db: BibDatabase, path: str) -> None:
        directory = os.path.dirname(os.path.abspath(path))
        tmp = tempfile.NamedTemporaryFile(
            "w", delete=False, encoding="utf-8", suffix=".bib", prefix=".tmp_bib_", dir=directory
        )
        try:
            tmp.write(self.dumps(db))
            tmp.flush()
            os.fsync(tmp.fileno())
        finally:
            tmp.close()
        os.replace(tmp.name, path)


# ------------- Snippet decoding -------------

_KEY_LINE_RE = re.compile(r"^(@\w+\s*\{)([^,]*),\s*$")


def _sanitize_key(text: str) -> str:
    # DBLP keys such as DBLP:conf/nips/VaswaniSPUJGKP17 contain characters the parser rejects
    lines = [line for line in text.strip().splitlines() if line.strip()]
    if lines:
        m = _KEY_LINE_RE.match(lines[0].strip())
        if m:
            lines[0] = m.group(1) + re.sub(r"[^a-zA-Z0-9]", "", m.group(2)) + ","
    return "\n".join(lines)


def parse_bibtex_records(text: str) -> list[dict[str, Any]]:
    """Decode a BibTeX snippet into entry dicts.

    Returns an empty list for anything that does not parse.
    """
    if not text or "@" not in text:
        return []
    try:
        db = BibLoader().loads(_sanitize_key(text))
    except Exception:
        return []
    return list(db.entries)


def container_title(entry: dict[str, Any]) -> str:
    """The venue of an entry: booktitle for proceedings papers, else journal."""
    return latex_to_plain(entry.get("booktitle") or entry.get("journal") or "")


# ------------- Entry <-> Draft -------------


def person_display_name(name: str) -> str:
    """Convert 'Family, Given' to 'Given Family'; other forms pass through."""
    name = latex_to_plain(name).strip()
    if "," in name:
        family, given = [p.strip() for p in name.split(",", 1)]
        return f"{given} {family}".strip()
    return name


def split_authors_bibtex(author_field: str) -> list[str]:
    """Split BibTeX 'A and B and C' author string into individual names."""
    if not author_field:
        return []
    return [p.strip() for p in re.split(r"\s+\band\b\s+", author_field, flags=re.IGNORECASE) if p.strip()]


def authors_from_bibtex(author_field: str) -> str:
    """BibTeX author field to the ', '-joined display form."""
    return ", ".join(person_display_name(a) for a in split_authors_bibtex(author_field))


def authors_to_bibtex(authors: str) -> str:
    return " and ".join(a.strip() for a in authors.split(",") if a.strip())


def entry_to_draft(entry: dict[str, Any]) -> PaperDraft:
    """Build a draft from a BibTeX entry dict."""
    entry_type = (entry.get("ENTRYTYPE") or "misc").lower()
    arxiv = entry.get("eprint", "") if (entry.get("archiveprefix", "").lower() == "arxiv") else ""
    if not arxiv:
        for name in ("eprint", "url", "journal", "note"):
            found = extract_arxiv_id_from_text(entry.get(name, "")) if "arxiv" in entry.get(name, "").lower() else None
            if found:
                arxiv = found
                break
    return PaperDraft(
        title=latex_to_plain(entry.get("title", "")),
        authors=authors_from_bibtex(entry.get("author", "")),
        publication=container_title(entry) or latex_to_plain(entry.get("howpublished", "")),
        pub_time=(entry.get("year") or "").strip(),
        pub_type=ENTRYTYPE_TO_PUBTYPE.get(entry_type, PubType.OTHER) if entry.get("ENTRYTYPE") else None,
        doi=(entry.get("doi") or "").strip(),
        arxiv=arxiv,
        pages=(entry.get("pages") or "").strip(),
        volume=(entry.get("volume") or "").strip(),
        number=(entry.get("number") or "").strip(),
        publisher=latex_to_plain(entry.get("publisher", "")),
        key=entry.get("ID", ""),
    )


def update_entry_from_draft(entry: dict[str, Any], draft: PaperDraft) -> dict[str, Any]:
    """Return a copy of ``entry`` with the resolved draft fields written back."""
    new = dict(entry)
    if draft.pub_type is not None:
        new["ENTRYTYPE"] = PUBTYPE_TO_ENTRYTYPE[PubType(draft.pub_type)]
    entry_type = new.get("ENTRYTYPE", "misc")

    simple = {
        "title": draft.title,
        "year": draft.pub_time,
        "doi": draft.doi,
        "pages": draft.pages,
        "volume": draft.volume,
        "number": draft.number,
        "publisher": draft.publisher,
    }
    for name, value in simple.items():
        if not is_empty(value):
            new[name] = value
    if not is_empty(draft.authors):
        new["author"] = authors_to_bibtex(draft.authors)
    if not is_empty(draft.arxiv):
        new["eprint"] = draft.arxiv
        new["archiveprefix"] = "arXiv"

    if not is_empty(draft.publication):
        venue_field = VENUE_FIELD.get(entry_type, "howpublished")
        for other in ("journal", "booktitle", "howpublished"):
            if other != venue_field:
                new.pop(other, None)
        if venue_field != "publisher":
            new[venue_field] = draft.publication
    return new
