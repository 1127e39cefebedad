"""
Run-scoped state handed to every transformer.

The identifier maps are filled in by Phases 1 and 2 and only read afterwards,
so the Phase-3 branches can share one context without further locking.
"""

import uuid
from dataclasses import dataclass, field

from parlwatch.config import Settings
from parlwatch.ids import CadastroId, DepId, DistrictCode, PartyAcronym, RowId
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.result import PipelineResult
from parlwatch.store import Store


@dataclass
class IdentifierMaps:
    parties: dict[PartyAcronym, RowId] = field(default_factory=dict)
    districts: dict[DistrictCode, RowId] = field(default_factory=dict)
    deputies_by_dep_id: dict[DepId, RowId] = field(default_factory=dict)
    deputies_by_cadastro: dict[CadastroId, RowId] = field(default_factory=dict)


@dataclass
class PipelineContext:
    settings: Settings
    store: Store
    client: ParlamentoClient
    result: PipelineResult = field(default_factory=PipelineResult)
    maps: IdentifierMaps = field(default_factory=IdentifierMaps)
    full_resync: bool = False
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
