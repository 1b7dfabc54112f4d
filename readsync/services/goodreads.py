"""Read a Goodreads library export CSV for backfilling reading history."""

import csv
import io
from dataclasses import dataclass
from datetime import UTC, datetime

from readsync.models import ReadingStatus

SHELF_STATUS = {
    "read": ReadingStatus.FINISHED,
    "currently-reading": ReadingStatus.CURRENTLY_READING,
    "to-read": ReadingStatus.WANT_TO_READ,
}


@dataclass
class GoodreadsRow:
    goodreads_id: str
    title: str
    author: str
    isbn: str | None
    total_pages: int | None
    rating: int | None
    shelf: str | None
    date_added: datetime | None
    date_read: datetime | None

    @property
    def reading_status(self) -> ReadingStatus:
        if self.date_read is not None:
            return ReadingStatus.FINISHED
        return SHELF_STATUS.get(self.shelf or "", ReadingStatus.WANT_TO_READ)


def _clean_isbn(raw: str | None) -> str | None:
    """Goodreads wraps ISBNs as ="..." to keep spreadsheets from mangling them."""
    if not raw:
        return None
    cleaned = raw.strip().strip('="').strip('"')
    return cleaned or None


def _int_or_none(raw: str | None) -> int | None:
    if not raw or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _timestamp(raw: str | None) -> datetime | None:
    if not raw or not raw.strip():
        return None
    try:
        return datetime.strptime(raw.strip(), "%Y/%m/%d").replace(tzinfo=UTC)
    except ValueError:
        return None


def parse_goodreads_csv(content: str) -> list[GoodreadsRow]:
    rows = []
    for raw in csv.DictReader(io.StringIO(content)):
        rating = _int_or_none(raw.get("My Rating"))
        rows.append(
            GoodreadsRow(
                goodreads_id=(raw.get("Book Id") or "").strip(),
                title=(raw.get("Title") or "").strip(),
                author=(raw.get("Author") or "").strip(),
                isbn=_clean_isbn(raw.get("ISBN13")) or _clean_isbn(raw.get("ISBN")),
                total_pages=_int_or_none(raw.get("Number of Pages")),
                rating=rating if rating else None,
                shelf=(raw.get("Exclusive Shelf") or "").strip() or None,
                date_added=_timestamp(raw.get("Date Added")),
                date_read=_timestamp(raw.get("Date Read")),
            )
        )
    return rows
