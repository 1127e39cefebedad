"""
Pure transformation helpers for every Parliament data domain.

Re-exports the public helpers so callers can import from the package without
knowing which submodule a function lives in:

    from parlwatch.transforms import deduplicate_deputies, names_match

Each submodule corresponds to one data domain and contains only pure
functions over feed records and row dicts; no I/O, no store access.
"""

from .activities import (
    count_interventions,
    distribute_interventions,
    extract_deputy_from_author,
)
from .attendance import (
    DeputyCandidate,
    match_deputies,
    names_match,
    normalize_name,
    parse_attendance_status,
)
from .biography import parse_birth_date, parse_portuguese_date
from .deputies import (
    deduplicate_deputies,
    get_current_party,
    get_mandate_dates,
    is_active_deputy,
    parse_legislature,
    photo_url,
)
from .initiatives import (
    count_authors,
    flatten_initiative,
    flatten_party_vote,
    parse_party_vote_detail,
    tally_party_votes,
)
from .parties import flatten_district, flatten_party, party_color

__all__ = [
    "count_interventions",
    "distribute_interventions",
    "extract_deputy_from_author",
    "DeputyCandidate",
    "match_deputies",
    "names_match",
    "normalize_name",
    "parse_attendance_status",
    "parse_birth_date",
    "parse_portuguese_date",
    "deduplicate_deputies",
    "get_current_party",
    "get_mandate_dates",
    "is_active_deputy",
    "parse_legislature",
    "photo_url",
    "count_authors",
    "flatten_initiative",
    "flatten_party_vote",
    "parse_party_vote_detail",
    "tally_party_votes",
    "flatten_district",
    "flatten_party",
    "party_color",
]
