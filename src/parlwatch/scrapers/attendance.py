"""
Plenary attendance scraper.

Pages (static HTML, no browser automation needed):
  Meeting list    /DeputadoGP/Paginas/reunioesplenarias.aspx
  Meeting detail  /DeputadoGP/Paginas/DetalheReuniaoPlenaria.aspx?BID=<meeting>

The list links every meeting as ``<a href="...?BID=335330">2025-12-18</a>``.
Each detail page repeats one block per deputy:

    <a id="...hplDeputado" href="...Biografia.aspx?BID=7489">Name</a>
    <span id="...lblGP">PSD</span>
    <span id="...lblPresenca">Presença (P)</span>
    <span id="...lblMotivo">reason</span>
"""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from parlwatch.config import MEETING_DETAIL_URL, MEETING_LIST_URL
from parlwatch.ids import BiographyId
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.transforms.attendance import parse_attendance_status

_MEETING_HREF = re.compile(r"DetalheReuniaoPlenaria\.aspx\?BID=(\d+)")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_BID = re.compile(r"BID=(\d+)")


@dataclass(frozen=True)
class PlenaryMeeting:
    bid: int
    date: str  # ISO date


@dataclass(frozen=True)
class AttendanceRecord:
    meeting_bid: int
    meeting_date: str
    deputy_bid: BiographyId
    deputy_name: str
    party: str
    status: str
    status_raw: str
    reason: str | None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def _row_span(soup: BeautifulSoup, row: str, field: str) -> str:
    # spans share the repeater row prefix of the deputy link
    span = soup.find("span", id=f"{row}{field}")
    return span.get_text(strip=True) if span else ""


def extract_meeting_list(page: str) -> list[PlenaryMeeting]:
    """All (BID, date) pairs linked from the meeting list, first link wins."""
    soup = BeautifulSoup(page, "lxml")
    meetings: dict[int, PlenaryMeeting] = {}
    for link in soup.find_all("a", href=_MEETING_HREF):
        date = link.get_text(strip=True)
        if not _ISO_DATE.match(date):
            continue
        bid = int(_MEETING_HREF.search(link["href"]).group(1))
        meetings.setdefault(bid, PlenaryMeeting(bid=bid, date=date))
    return list(meetings.values())


def extract_meeting_attendance(page: str, meeting: PlenaryMeeting) -> list[AttendanceRecord]:
    soup = BeautifulSoup(page, "lxml")
    records = []
    for anchor in soup.find_all("a", id=re.compile(r"hplDeputado$")):
        row = anchor["id"][: -len("hplDeputado")]
        bid = _BID.search(anchor.get("href", ""))
        name = anchor.get_text(strip=True)
        status_raw = _row_span(soup, row, "lblPresenca")
        if bid is None or not name or not status_raw:
            continue
        records.append(AttendanceRecord(
            meeting_bid  = meeting.bid,
            meeting_date = meeting.date,
            deputy_bid   = BiographyId(int(bid.group(1))),
            deputy_name  = name,
            party        = _row_span(soup, row, "lblGP"),
            status       = parse_attendance_status(status_raw),
            status_raw   = status_raw,
            reason       = _row_span(soup, row, "lblMotivo") or None,
        ))
    return records


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

async def fetch_meeting_list(client: ParlamentoClient) -> list[PlenaryMeeting]:
    page = await client.get_html(MEETING_LIST_URL)
    meetings = extract_meeting_list(page)
    print(f"  found {len(meetings)} plenary meetings")
    return meetings


async def fetch_meeting_attendance(
    client: ParlamentoClient, meeting: PlenaryMeeting
) -> list[AttendanceRecord]:
    page = await client.get_html(f"{MEETING_DETAIL_URL}?BID={meeting.bid}")
    return extract_meeting_attendance(page, meeting)


async def fetch_all_attendance(
    client: ParlamentoClient,
    meetings: list[PlenaryMeeting],
) -> list[AttendanceRecord]:
    """Fetch detail pages one after another (politeness delay in the client)."""
    records: list[AttendanceRecord] = []
    for i, meeting in enumerate(meetings, 1):
        print(f"  [{i}/{len(meetings)}] meeting {meeting.date} (BID={meeting.bid})")
        records.extend(await fetch_meeting_attendance(client, meeting))
    print(f"  attendance records fetched: {len(records)}")
    return records
