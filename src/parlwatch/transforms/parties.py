"""
Parliamentary groups and electoral circles.

Parties are keyed on their acronym (``sigla``); the feed carries no stable
numeric ID for groups. Colors are the ones used by the parties' own branding.
"""

from parlwatch.feeds import DistrictRecord, PartyRecord

PARTY_COLORS = {
    "PS":     "#FF66B2",
    "PSD":    "#FF6600",
    "CH":     "#202056",
    "IL":     "#00ADEF",
    "BE":     "#C40000",
    "PCP":    "#C41200",
    "L":      "#00AA00",
    "PAN":    "#009639",
    "CDS-PP": "#0066CC",
}
DEFAULT_PARTY_COLOR = "#808080"


def party_color(acronym: str) -> str:
    return PARTY_COLORS.get(acronym, DEFAULT_PARTY_COLOR)


def flatten_party(party: PartyRecord) -> dict:
    return {
        "external_id": party.acronym,
        "acronym":     party.acronym,
        "name":        party.name,
        "color":       party_color(party.acronym),
    }


def flatten_district(district: DistrictRecord) -> dict:
    return {
        "external_id": str(district.code),
        "name":        district.name,
    }
