"""Issue public share links for report cards.

Each (student, term) pair has at most one live token. Issuing links for a
selection reuses a token that has not expired and mints a fresh one
otherwise; records are never deleted. The public URL is::

    {origin}/report/{token}/{slug}

where the slug is the student's name and is cosmetic: retrieval is keyed on
the token alone.

**Error Handling:**
- A student without a report, or whose token cannot be stored, is recorded
  as a failure and the remaining students are still processed
- A bad origin or non-positive expiry raises ValueError before anything is
  issued
"""

from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .data_models import (
    BatchFailure,
    IssuedLink,
    ShareLinkRecord,
    ShareResult,
    StudentStanding,
)
from .utils import as_utc, slugify

LOG = logging.getLogger(__name__)

NO_REPORT_REASON = "No report card found for this term."
TOKEN_BYTES = 24

LINK_COLUMNS = ["Student Name", "Link", "Expires At", "Reused"]


class ShareLinkStore:
    """In-memory share link records keyed by (student_id, term_id)."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], ShareLinkRecord] = {}

    def get(self, student_id: str, term_id: str) -> Optional[ShareLinkRecord]:
        return self._records.get((student_id, term_id))

    def save(self, record: ShareLinkRecord) -> None:
        self._records[(record.student_id, record.term_id)] = record

    def find_token(self, token: str) -> Optional[ShareLinkRecord]:
        """Look a record up by token, as the public retrieval view does."""
        return next((r for r in self._records.values() if r.token == token), None)

    def records(self) -> List[ShareLinkRecord]:
        return list(self._records.values())


class JsonShareLinkStore(ShareLinkStore):
    """Share link records persisted to a JSON file after every save.

    Parameters
    ----------
    path : Path
        JSON file; created on first save. Its parent directory must exist.

    Raises
    ------
    ValueError
        If an existing file is not valid JSON.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8")) or []
            except json.JSONDecodeError as exc:
                raise ValueError(f"Share link store is not valid JSON: {self.path}") from exc
            for entry in payload:
                super().save(
                    ShareLinkRecord(
                        student_id=str(entry["student_id"]),
                        term_id=str(entry["term_id"]),
                        token=entry["token"],
                        expires_at=as_utc(datetime.fromisoformat(entry["expires_at"])),
                        published=bool(entry.get("published", True)),
                    )
                )
            LOG.info("Loaded %d share link record(s) from %s", len(payload), self.path)

    def save(self, record: ShareLinkRecord) -> None:
        super().save(record)
        payload = [
            {
                "student_id": r.student_id,
                "term_id": r.term_id,
                "token": r.token,
                "expires_at": r.expires_at.isoformat(),
                "published": r.published,
            }
            for r in self.records()
        ]
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def build_share_url(origin: str, token: str, student_name: str) -> str:
    """Build the public report URL.

    Examples
    --------
    >>> build_share_url("https://school.example/", "abc", "Ada Obi")
    'https://school.example/report/abc/ada-obi'
    """
    return f"{origin.rstrip('/')}/report/{token}/{slugify(student_name, separator='-')}"


def ensure_link(
    store: ShareLinkStore,
    student_id: str,
    term_id: str,
    expiry_hours: int,
    now: datetime,
    token_factory: Callable[[], str],
) -> Tuple[ShareLinkRecord, bool]:
    """Return a live record for the pair, minting one if needed.

    Returns
    -------
    Tuple[ShareLinkRecord, bool]
        The record and whether an existing token was reused. A reused token
        keeps its original expiry.
    """
    existing = store.get(student_id, term_id)
    if existing is not None and existing.is_live(now):
        if not existing.published:
            existing = ShareLinkRecord(
                student_id=existing.student_id,
                term_id=existing.term_id,
                token=existing.token,
                expires_at=existing.expires_at,
                published=True,
            )
            store.save(existing)
        return existing, True
    record = ShareLinkRecord(
        student_id=student_id,
        term_id=term_id,
        token=token_factory(),
        expires_at=now + timedelta(hours=expiry_hours),
        published=True,
    )
    store.save(record)
    return record, False


def issue_links(
    students: Sequence[StudentStanding],
    term_id: str,
    store: ShareLinkStore,
    origin: str,
    expiry_hours: int,
    now: Optional[datetime] = None,
    token_factory: Optional[Callable[[], str]] = None,
) -> ShareResult:
    """Issue share links for the selected students.

    Parameters
    ----------
    students : Sequence[StudentStanding]
        Selected students, in order.
    term_id : str
        Term the reports belong to.
    store : ShareLinkStore
        Where tokens are looked up and persisted.
    origin : str
        Public site origin, e.g. 'https://portal.school.org'.
    expiry_hours : int
        Lifetime of newly minted tokens.
    now : datetime, optional
        Current time (UTC now by default). A naive value is taken as UTC.
    token_factory : callable, optional
        Token generator; ``secrets.token_urlsafe`` by default.

    Returns
    -------
    ShareResult
        Issued links and per-student failures.

    Raises
    ------
    ValueError
        If origin is not an http(s) URL or expiry_hours is not positive.
    """
    if not origin.startswith(("http://", "https://")):
        raise ValueError(f"Share origin must start with http:// or https://, got {origin!r}")
    if expiry_hours <= 0:
        raise ValueError(f"expiry_hours must be positive, got {expiry_hours}")
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    token_factory = token_factory or (lambda: secrets.token_urlsafe(TOKEN_BYTES))

    links: List[IssuedLink] = []
    failures: List[BatchFailure] = []
    for student in students:
        if not student.report_exists:
            failures.append(
                BatchFailure(name=student.name, reason=NO_REPORT_REASON, student_id=student.student_id)
            )
            continue
        try:
            record, reused = ensure_link(
                store, student.student_id, term_id, expiry_hours, now, token_factory
            )
        except (OSError, ValueError) as exc:
            LOG.warning("Could not issue share link for %s: %s", student.name, exc)
            failures.append(
                BatchFailure(name=student.name, reason=str(exc), student_id=student.student_id)
            )
            continue
        links.append(
            IssuedLink(
                student_id=student.student_id,
                student_name=student.name,
                url=build_share_url(origin, record.token, student.name),
                token=record.token,
                expires_at=record.expires_at,
                reused=reused,
            )
        )
    LOG.info(
        "Issued %d share link(s) (%d reused), %d failure(s)",
        len(links),
        sum(1 for link in links if link.reused),
        len(failures),
    )
    return ShareResult(links=links, failures=failures)


def links_frame(links: Sequence[IssuedLink]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Student Name": link.student_name,
                "Link": link.url,
                "Expires At": link.expires_at.isoformat(),
                "Reused": "Yes" if link.reused else "No",
            }
            for link in links
        ],
        columns=LINK_COLUMNS,
    )


def export_links_csv(links: Sequence[IssuedLink], path: Path) -> Path:
    """Write the link set as CSV; returns the path."""
    links_frame(links).to_csv(path, index=False)
    return path


def clipboard_text(links: Sequence[IssuedLink]) -> str:
    """One ``Name: URL`` line per link, for pasting into a message.

    Examples
    --------
    >>> clipboard_text([])
    ''
    """
    return "\n".join(f"{link.student_name}: {link.url}" for link in links)
