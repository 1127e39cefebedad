"""Shared fixtures: settings without delays, an in-memory store and small feeds."""

import json

import httpx
import pytest

from parlwatch.config import Settings
from parlwatch.context import PipelineContext
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.store import Store


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=":memory:",
        snapshot_dir=tmp_path / "snapshots",
        http_timeout=5.0,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        scrape_delay=0.0,
        min_deputies=1,
        min_parties=1,
    )


@pytest.fixture
def store():
    s = Store(":memory:")
    yield s
    s.close()


def _not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, text="not found")


@pytest.fixture
def make_ctx(settings, store):
    """Build a PipelineContext whose HTTP calls go to ``handler``."""
    def _make(handler=_not_found, settings=settings):
        client = ParlamentoClient.from_settings(settings, transport=httpx.MockTransport(handler))
        return PipelineContext(settings=settings, store=store, client=client)
    return _make


def deputy_raw(dep_id, short_name, full_name, party, district, start, end=None,
               status="Efetivo", cadastro=None):
    return {
        "DepId": dep_id,
        "DepCadId": cadastro if cadastro is not None else dep_id + 1000,
        "DepNomeParlamentar": short_name,
        "DepNomeCompleto": full_name,
        "DepCPId": district,
        "DepCPDes": {1: "Lisboa", 2: "Porto"}.get(district),
        "LegDes": "XVII",
        "DepGP": [{"gpId": 1, "gpSigla": party, "gpDtInicio": start, "gpDtFim": end}],
        "DepSituacao": [{"sioDes": status, "sioDtInicio": start, "sioDtFim": end}],
        "DepCargo": None,
    }


@pytest.fixture
def base_info_raw():
    """3 parties, 2 districts, 5 deputies; DepId 4 appears twice (old, then new)."""
    return {
        "GruposParlamentares": [
            {"sigla": "PS", "nome": "Partido Socialista"},
            {"sigla": "PSD", "nome": "Partido Social Democrata"},
            {"sigla": "CH", "nome": "Chega"},
        ],
        "CirculosEleitorais": [
            {"cpId": 1, "cpDes": "Lisboa", "legDes": "XVII"},
            {"cpId": 2, "cpDes": "Porto", "legDes": "XVII"},
        ],
        "Deputados": [
            deputy_raw(1, "Ana Silva", "Ana Maria Silva", "PS", 1, "2024-03-26"),
            deputy_raw(2, "Bruno Costa", "Bruno Miguel Costa", "PSD", 2, "2024-03-26"),
            deputy_raw(3, "Carla Dias", "Carla Sofia Dias", "CH", 1, "2024-03-26"),
            deputy_raw(4, "Duarte Neves", "Duarte Neves Antigo", "PS", 2,
                       "2019-10-25", end="2022-03-28", status="Cessou"),
            deputy_raw(5, "Eva Rocha", "Eva Cristina Rocha", "PSD", 1, "2024-03-26"),
            deputy_raw(4, "Duarte Neves", "Duarte Pedro Neves", "PS", 2, "2024-03-26"),
        ],
    }


@pytest.fixture
def initiatives_raw():
    return [
        {
            "IniId": "1001",
            "IniDescTipo": "Projeto de Lei",
            "IniNr": "12",
            "IniTitulo": "Altera o regime de arrendamento urbano",
            "IniAutorDeputados": [{"idCadastro": "1001", "nome": "Ana Silva", "GP": "PS"}],
            "IniEventos": [
                {"EvtId": 1, "OevId": 1, "Fase": "Entrada", "CodigoFase": "10", "DataFase": "2024-04-01"},
                {
                    "EvtId": 2, "OevId": 2,
                    "Fase": "Votação na generalidade", "CodigoFase": "180",
                    "DataFase": "2024-05-10",
                    "Votacao": [{
                        "id": "v-1",
                        "data": "2024-05-10",
                        "descricao": "Votação na generalidade",
                        "detalhe": "A Favor: <I>PS</I>, <I>PSD</I><BR>Contra:<I>CH</I>",
                        "resultado": "Aprovado",
                        "reuniao": "45",
                        "tipoReuniao": "Reunião Plenária",
                        "unanime": "Não",
                    }],
                },
            ],
        },
        {
            "IniId": "1002",
            "IniDescTipo": "Projeto de Resolução",
            "IniNr": "3",
            "IniTitulo": None,
            "IniAutorDeputados": [
                {"idCadastro": "1001", "nome": "Ana Silva", "GP": "PS"},
                {"idCadastro": "1003", "nome": "Carla Dias", "GP": "CH"},
                {"idCadastro": "9999", "nome": "Desconhecido", "GP": "PS"},
            ],
            "IniEventos": [
                {"EvtId": 3, "OevId": 3, "Fase": "Entrada", "CodigoFase": "10", "DataFase": "2024-06-01"},
            ],
        },
    ]


@pytest.fixture
def activities_raw():
    return {
        "Debates": [
            {"DebateId": "d1", "Assunto": "Habitação", "AutoresGP": "PS",
             "AutoresDeputados": None, "DataDebate": "2024-05-02",
             "Intervencoes": ["i1", "i2", "i3"], "TipoDebateDesig": "Declaração política"},
            {"DebateId": "d2", "Assunto": "Saúde", "AutoresGP": None,
             "AutoresDeputados": "Carla Dias (CH)", "DataDebate": "2024-05-03",
             "Intervencoes": ["i4"], "TipoDebateDesig": "Declaração política"},
        ]
    }


@pytest.fixture
def snapshot(settings, base_info_raw, initiatives_raw, activities_raw):
    """Write a snapshot directory and return its timestamp."""
    timestamp = "2025-01-15T06-00-00Z"
    out = settings.snapshot_dir / timestamp
    out.mkdir(parents=True)
    for name, data in (
        ("informacao_base", base_info_raw),
        ("iniciativas", initiatives_raw),
        ("atividades", activities_raw),
        ("agenda", []),
    ):
        (out / f"{name}.json").write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return timestamp


MEETINGS = {"500": "2024-05-10", "501": "2024-05-11"}

ATTENDANCE = {
    "500": [
        (7001, "Ana Silva", "PS", "Presença (P)"),
        (7002, "Bruno Costa", "PSD", "Falta Justificada"),
        (7999, "Zé Ninguém", "CH", "Presença (P)"),
    ],
    "501": [
        (7001, "Ana Silva", "PS", "Ausência em Quórum (AQ)"),
    ],
}

BIOGRAPHIES = {
    "7001": """
        <span id="x_ucDOB_rptContent_ctl01_lblText">23 de Agosto de 1975</span>
        <span id="x_ucProf_rptContent_ctl01_lblText">Economista</span>
    """,
}


def meeting_list_page() -> str:
    return "\n".join(
        f'<a href="/DeputadoGP/Paginas/DetalheReuniaoPlenaria.aspx?BID={bid}">{day}</a>'
        for bid, day in MEETINGS.items()
    )


def meeting_detail_page(bid: str) -> str:
    blocks = []
    for i, (dep_bid, name, party, status) in enumerate(ATTENDANCE.get(bid, []), 1):
        blocks.append(
            f'<a id="rpt_ctl{i:02d}_hplDeputado" href="/DeputadoGP/Paginas/Biografia.aspx?BID={dep_bid}">{name}</a>'
            f'<span id="rpt_ctl{i:02d}_lblGP">{party}</span>'
            f'<span id="rpt_ctl{i:02d}_lblPresenca">{status}</span>'
            f'<span id="rpt_ctl{i:02d}_lblMotivo"></span>'
        )
    return "\n".join(blocks)


def parlamento_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    bid = request.url.params.get("BID")
    if path.endswith("reunioesplenarias.aspx"):
        return httpx.Response(200, text=meeting_list_page())
    if path.endswith("DetalheReuniaoPlenaria.aspx") and bid in MEETINGS:
        return httpx.Response(200, text=meeting_detail_page(bid))
    if path.endswith("Biografia.aspx") and bid in BIOGRAPHIES:
        return httpx.Response(200, text=BIOGRAPHIES[bid])
    return httpx.Response(404, text="not found")


@pytest.fixture
def parlamento_site():
    """Handler serving the canned meeting, attendance and biography pages."""
    return parlamento_handler
