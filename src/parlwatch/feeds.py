"""
Typed views over the raw open-data feeds.

Each dataset is validated once, when the snapshot file is read. Records are
pydantic models whose field aliases are the feed's own keys, so a record that
lacks a field the transformers rely on (or carries a nested entry of the
wrong shape) is rejected here with a message naming the record instead of
failing somewhere deep inside a phase.

Feeds:
  informacao_base  → BaseInfo   (Deputados, GruposParlamentares, CirculosEleitorais)
  iniciativas      → Initiatives (list[InitiativeRecord])
  atividades       → Activities (Debates)
"""

from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator

from parlwatch.errors import FeedValidationError
from parlwatch.ids import CadastroId, DepId, DistrictCode, PartyAcronym
from parlwatch.utils import to_int, unwrap_list


def _blank_to_none(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, (str, int, float)) and not isinstance(val, bool):
        return str(val).strip() or None
    return val


def _as_list(val: Any) -> list:
    if val is None or isinstance(val, (dict, list, tuple)):
        return unwrap_list(val)
    raise ValueError(f"expected a list of objects, got {type(val).__name__}")


def _votes_with_id(val: Any) -> list:
    return [v for v in _as_list(val) if not isinstance(v, dict) or v.get("id") not in (None, "")]


def _count(val: Any) -> int:
    if isinstance(val, int):
        return val
    return len(_as_list(val))


Text = Annotated[str | None, BeforeValidator(_blank_to_none)]
RequiredText = Annotated[str, BeforeValidator(_blank_to_none)]
LenientInt = Annotated[int | None, BeforeValidator(to_int)]


class FeedModel(BaseModel):
    """Feed records: built from feed keys (aliases) or from field names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Base information
# ---------------------------------------------------------------------------

class PartyRecord(FeedModel):
    acronym: Annotated[PartyAcronym, BeforeValidator(_blank_to_none)] = Field(alias="sigla")
    name: str = Field(alias="nome")

    @model_validator(mode="before")
    @classmethod
    def _name_defaults_to_acronym(cls, data: Any) -> Any:
        if isinstance(data, dict) and "sigla" in data:
            data = dict(data)
            data["nome"] = _blank_to_none(data.get("nome")) or _blank_to_none(data.get("sigla"))
        return data


class DistrictRecord(FeedModel):
    code: Annotated[DistrictCode, BeforeValidator(to_int)] = Field(alias="cpId")
    name: str = Field(alias="cpDes")

    @model_validator(mode="before")
    @classmethod
    def _name_defaults_to_code(cls, data: Any) -> Any:
        if isinstance(data, dict) and "cpId" in data:
            data = dict(data)
            data["cpDes"] = _blank_to_none(data.get("cpDes")) or _blank_to_none(data.get("cpId"))
        return data


class StatusEntry(FeedModel):
    """One ``DepSituacao`` entry (e.g. "Efetivo", "Suspenso(Eleito)")."""

    description: Text = Field(None, alias="sioDes")
    start: Text = Field(None, alias="sioDtInicio")
    end: Text = Field(None, alias="sioDtFim")


class PartyEntry(FeedModel):
    """One ``DepGP`` entry: a membership window in a parliamentary group."""

    acronym: Annotated[PartyAcronym | None, BeforeValidator(_blank_to_none)] = Field(None, alias="gpSigla")
    group_id: LenientInt = Field(None, alias="gpId")
    start: Text = Field(None, alias="gpDtInicio")
    end: Text = Field(None, alias="gpDtFim")


class RoleEntry(FeedModel):
    """One ``DepCargo`` entry (e.g. "Vice-Presidente da AR")."""

    role_id: LenientInt = Field(None, alias="carId")
    name: Text = Field(None, alias="carDes")
    start: Text = Field(None, alias="carDtInicio")
    end: Text = Field(None, alias="carDtFim")


class DeputyRecord(FeedModel):
    dep_id: Annotated[DepId, BeforeValidator(to_int)] = Field(alias="DepId")
    cadastro_id: Annotated[CadastroId | None, BeforeValidator(to_int)] = Field(None, alias="DepCadId")
    full_name: str = Field(alias="DepNomeCompleto")
    short_name: str = Field(alias="DepNomeParlamentar")
    district_code: Annotated[DistrictCode | None, BeforeValidator(to_int)] = Field(None, alias="DepCPId")
    district_name: Text = Field(None, alias="DepCPDes")
    legislature_code: Text = Field(None, alias="LegDes")
    party_history: Annotated[list[PartyEntry], BeforeValidator(_as_list)] = Field([], alias="DepGP")
    status_history: Annotated[list[StatusEntry], BeforeValidator(_as_list)] = Field([], alias="DepSituacao")
    roles: Annotated[list[RoleEntry], BeforeValidator(_as_list)] = Field([], alias="DepCargo")

    @model_validator(mode="before")
    @classmethod
    def _names_fall_back_to_each_other(cls, data: Any) -> Any:
        # the feed sometimes carries only one of the two names
        if isinstance(data, dict) and "DepId" in data:
            data = dict(data)
            short = _blank_to_none(data.get("DepNomeParlamentar"))
            full = _blank_to_none(data.get("DepNomeCompleto")) or short
            data["DepNomeCompleto"] = full
            data["DepNomeParlamentar"] = short or full
        return data


@dataclass
class BaseInfo:
    deputies: list[DeputyRecord]
    parties: list[PartyRecord]
    districts: list[DistrictRecord]
    rejected: list[str] = field(default_factory=list)


def describe_rejection(kind: str, index: int, item: Any, err: ValidationError) -> str:
    """One line per rejected record: which record, which field, why."""
    first = err.errors()[0]
    loc = ".".join(str(part) for part in first["loc"]) or "record"
    label = f"{kind} #{index}"
    if isinstance(item, dict):
        for key in ("DepId", "IniId", "DebateId", "sigla", "cpId"):
            if item.get(key) not in (None, ""):
                label = f"{kind} {item[key]}"
                break
    return f"{label}: {loc}: {first['msg']}"


def _validate_each(kind: str, model: type[FeedModel], items: list, target: list, rejected: list[str]) -> None:
    for index, item in enumerate(items):
        try:
            target.append(model.model_validate(item))
        except ValidationError as e:
            rejected.append(describe_rejection(kind, index, item, e))


def parse_base_info(raw: Any) -> BaseInfo:
    """Validate the ``informacao_base`` document.

    Raises FeedValidationError when the document itself has the wrong shape.
    Individual malformed records are skipped and described in ``rejected``.
    """
    if not isinstance(raw, dict):
        raise FeedValidationError("informacao_base: expected a JSON object")
    if "Deputados" not in raw:
        raise FeedValidationError("informacao_base: missing 'Deputados'")

    info = BaseInfo(deputies=[], parties=[], districts=[])
    for key, kind, model, target in (
        ("Deputados", "deputy", DeputyRecord, info.deputies),
        ("GruposParlamentares", "party", PartyRecord, info.parties),
        ("CirculosEleitorais", "district", DistrictRecord, info.districts),
    ):
        try:
            items = _as_list(raw.get(key))
        except ValueError as e:
            raise FeedValidationError(f"informacao_base: {key!r}: {e}") from e
        _validate_each(kind, model, items, target, info.rejected)
    return info


# ---------------------------------------------------------------------------
# Initiatives
# ---------------------------------------------------------------------------

class VoteRecord(FeedModel):
    vote_id: RequiredText = Field(alias="id")
    date: Text = Field(None, alias="data")
    detail: Text = Field(None, alias="detalhe")
    result: Text = Field(None, alias="resultado")
    meeting: Text = Field(None, alias="reuniao")
    unanimous: Text = Field(None, alias="unanime")


class EventRecord(FeedModel):
    phase: Text = Field(None, alias="Fase")
    phase_code: Text = Field(None, alias="CodigoFase")
    phase_date: Text = Field(None, alias="DataFase")
    # votes without an id cannot be keyed and are dropped
    votes: Annotated[list[VoteRecord], BeforeValidator(_votes_with_id)] = Field([], alias="Votacao")


class AuthorRef(FeedModel):
    cadastro_id: Annotated[CadastroId | None, BeforeValidator(to_int)] = Field(None, alias="idCadastro")
    name: Text = Field(None, alias="nome")
    party: Text = Field(None, alias="GP")


class InitiativeRecord(FeedModel):
    ini_id: RequiredText = Field(alias="IniId")
    type: Text = Field(None, alias="IniDescTipo")
    number: Text = Field(None, alias="IniNr")
    title: Text = Field(None, alias="IniTitulo")
    authors: Annotated[list[AuthorRef], BeforeValidator(_as_list)] = Field([], alias="IniAutorDeputados")
    events: Annotated[list[EventRecord], BeforeValidator(_as_list)] = Field([], alias="IniEventos")


@dataclass
class Initiatives:
    records: list[InitiativeRecord]
    rejected: list[str] = field(default_factory=list)


def parse_initiatives(raw: Any) -> Initiatives:
    if not isinstance(raw, list):
        raise FeedValidationError("iniciativas: expected a JSON array")
    out = Initiatives(records=[])
    _validate_each("initiative", InitiativeRecord, raw, out.records, out.rejected)
    return out


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------

class DebateRecord(FeedModel):
    debate_id: Text = Field(None, alias="DebateId")
    subject: Text = Field(None, alias="Assunto")
    date: Text = Field(None, alias="DataDebate")
    author_deputies: Text = Field(None, alias="AutoresDeputados")
    author_groups: Text = Field(None, alias="AutoresGP")
    intervention_count: Annotated[int, BeforeValidator(_count)] = Field(0, alias="Intervencoes")


@dataclass
class Activities:
    debates: list[DebateRecord]
    rejected: list[str] = field(default_factory=list)


def parse_activities(raw: Any) -> Activities:
    if not isinstance(raw, dict):
        raise FeedValidationError("atividades: expected a JSON object")
    out = Activities(debates=[])
    try:
        items = _as_list(raw.get("Debates"))
    except ValueError as e:
        raise FeedValidationError(f"atividades: 'Debates': {e}") from e
    _validate_each("debate", DebateRecord, items, out.debates, out.rejected)
    return out
