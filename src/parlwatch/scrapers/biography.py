"""
Deputy biography scraper.

Page: /DeputadoGP/Paginas/Biografia.aspx?BID=<biography id>

Every field is rendered by a SharePoint repeater as a series of spans:

    <span id="..._ucDOB_rptContent_ctl01_lblText">23 de Agosto de 1975</span>

Fields:
  ucDOB              birth date (ISO or Portuguese long form)
  ucProf             profession (first value)
  ucHabilitacoes     education (all values, "; "-joined)
  ucCargosExercidos  positions held (all values, newline-joined narrative)
"""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from parlwatch.config import BIOGRAPHY_URL
from parlwatch.ids import BiographyId
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.transforms.biography import parse_birth_date


@dataclass(frozen=True)
class BiographyData:
    birth_date: str | None
    profession: str | None
    education: str | None
    bio_narrative: str | None


def biography_url(bid: BiographyId) -> str:
    return f"{BIOGRAPHY_URL}?BID={bid}"


def extract_span_values(page: str | BeautifulSoup, field_id: str) -> list[str]:
    """Text of every repeater span for ``field_id``, in page order."""
    soup = page if isinstance(page, BeautifulSoup) else BeautifulSoup(page, "lxml")
    pattern = re.compile(rf"{re.escape(field_id)}_rptContent_ctl\d+_lblText$", re.IGNORECASE)
    values = [span.get_text(strip=True) for span in soup.find_all("span", id=pattern)]
    return [v for v in values if v]


def extract_biography(page: str) -> BiographyData | None:
    """Parse a biography page; None when none of the fields are present."""
    soup = BeautifulSoup(page, "lxml")
    dob = extract_span_values(soup, "ucDOB")
    profession = extract_span_values(soup, "ucProf")
    education = extract_span_values(soup, "ucHabilitacoes")
    positions = extract_span_values(soup, "ucCargosExercidos")

    data = BiographyData(
        birth_date=parse_birth_date(dob[0]) if dob else None,
        profession=profession[0] if profession else None,
        education="; ".join(education) or None,
        bio_narrative="\n".join(positions) or None,
    )
    if not any((data.birth_date, data.profession, data.education, data.bio_narrative)):
        return None
    return data


async def fetch_biography(
    client: ParlamentoClient, bid: BiographyId
) -> tuple[BiographyData | None, str]:
    url = biography_url(bid)
    page = await client.get_html(url)
    return extract_biography(page), url
