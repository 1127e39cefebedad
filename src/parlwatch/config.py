"""
Static configuration for the Parliament watcher pipeline.

Module-level constants describe the data sources and on-disk layout. Tunable
parameters (timeouts, retry budget, batch sizes, politeness delays, TTLs) are
collected by ``load_settings()`` into an immutable ``Settings`` object that is
carried on the pipeline context, so components never read the environment
directly.

Environment overrides:
  PARLWATCH_DB_PATH     DuckDB file (or ``md:`` MotherDuck database)
  HTTP_TIMEOUT          seconds, total wait per fetch (default 30)
  USER_AGENT            polite user agent for the Parliament servers
  MAX_RETRIES           fetch attempts (default 3)
  RETRY_BASE_DELAY      seconds, doubled per attempt (default 1.0)
  RETRY_MAX_DELAY       seconds, backoff cap (default 30)
  DB_BATCH_SIZE         rows per upsert batch (default 50)
  SCRAPE_DELAY          seconds between scrape requests (default 0.5)
  BIOGRAPHY_TTL_DAYS    re-scrape window for biographies (default 7)
  DEFAULT_LEGISLATURE   fallback legislature number (default 17)
  SYNC_ATTENDANCE       "false" disables the attendance scrape
  SYNC_BIOGRAPHIES      "false" disables the biography scrape
  MIN_DEPUTIES          expected minimum deputies per run (default 200)
  MIN_PARTIES           expected minimum parties per run (default 5)
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Resolve paths relative to this file so the CLI works from any CWD
_REPO_ROOT = Path(__file__).resolve().parent.parent.parent

SNAPSHOT_DIR = _REPO_ROOT / "data" / "snapshots"
DB_PATH = _REPO_ROOT / "data" / "warehouse" / "parlamento.duckdb"

# XVII Legislature open-data feeds (parlamento.pt/Cidadania/Paginas/DadosAbertos.aspx)
_DOCS_URL = "https://app.parlamento.pt/webutils/docs/doc.txt"
DATASETS = [
    {
        "name": "informacao_base",
        "url": f"{_DOCS_URL}?path=a4zfhVMRlkdx8PM4w%2fg1C1Vt1TLL3nxEyDWBwgqjBdJ7w%2f%2bbRwjvq2lIPr1xRzJ6DBy%2fOxQCKfWDla%2fScSjS6%2f0N3a%2b%2b%2bTVRcUvCJTkFrTAUT%2bpzIFRAScSKhiWv2HGWkAHIxlwTIeOsSOOsrXmbVE%2bHE%2fHLJ6RWbSsJBaLWq70lF4rBy8G6GbdPHdrrdiatO%2fCimTiuyO8Wki6C7zu5Klq5f53YZ%2b4MtX8FF5lC1pyiQrC%2bwSVBcu%2brHigPkI56fz8xBGvxVgoQ0nQdAuby1qmhEyYT6RCxaQAqbqv0m70pJF19SyzE62kUF%2fYRio8PiC5DjRA4%2b2eF1X7FfO4s7Bfcq7lsR9LR2PCbXn9zBNQ9mqEnp0H%2brT%2f5vD%2fgcT%2bzF3SPcKfuZKhhDvK1cBgse9ktAzWSZxzzqgCqsUeQ760%3d&fich=InformacaoBaseXVII_json.txt&Inline=true",
    },
    {
        "name": "agenda",
        "url": f"{_DOCS_URL}?path=g25ZKRvxj7E%2bCuDT3BoxJKbdRNwmcYXtDyTuONx177jIzjV1iQEe7XWX%2b7%2fJUNBH44hpZdfF4HzOP16W6E0lR8eot3IlY7TgTVcWImO0oJgRev1hYgkUTv5d65p0xnT1CrxFg94PU28ExjUn%2fis5CM6y4exOfKkT2facldXDSymtw8B925QnPFu3bGHaUy3tNBWgcuBTKioEyw1AGDmt2RGPiQL0IkviQhm89hMl8Giho6fBjqvYCNJUtOrViFRa7JANbUzfcTwv3wQMaXqgEJXPmJpXXNrehBlmZz%2fgsK7xX93pnvh5Hd%2f6vTFp8fiFqY6rFXSHedRs7x0%2blGrZVyCL5GHNzr0kx9%2fTn7HuAn5LRjPAHZzIn32e70j2ejDTmluroJqE%2bPSjuMirn%2bWOOw%3d%3d&fich=AgendaParlamentar_json.txt&Inline=true",
    },
    {
        "name": "atividades",
        "url": f"{_DOCS_URL}?path=e1YJBaCJaLQK8BASoFHdlARZwZA5hyhPh5vP0APddrwNl69a1wHYpmA3RQoAqxhbXnLIszOaHdfWRZHIIlZaMkLnjq1ZCO2YGG5GKoYbRWmrGbDBP9i6aup%2fDmNgFv8k7l8z%2bBFOZTjUtIxu%2bNZVfT67IVFOQN%2bj2aJvKpDTqr5IQ67%2ffrTpoFYo%2b19eDltEPk%2ftAA8dPgHIjmnFnFt8%2f6%2bFRyowASGEjWOPgVSAW%2bY2kRvgIl5f07BcTYq%2fp7PMVR8MRccoEgv6dwCvaj0VGt2ZrJUPgaAbvV0Z06lWk%2boGu6MFb3kAQnX1kFWn33d2rE64nk7zDYlXd18EAGj6c3UQsj4UtT%2fbNR0VXC6Z%2fmc%3d&fich=AtividadesXVII_json.txt&Inline=true",
    },
    {
        "name": "iniciativas",
        "url": f"{_DOCS_URL}?path=Yz8kckc%2fHKUrwsW5K50QhxjWY9xUh9OHGQI1m8LzCYqid4%2bQA61kIcK%2fkcXn0ch3QBk8i38ciIwq8%2b5WlsgEmok3%2fiP%2fmgbCMayFdyVZziZOuis%2bEQjEB4UqSyViYoIt7yC5YLIdbQtXXB6u2UedPJ%2bxanNa0TetcHCXLoWeDxEGMn5Wc8XVaSuF4g%2ftt9JVkxpA4RelGdYOw30DJNx25X7u%2bsw3LsDCKpRYtb9X3dYPeQ6aO3162M%2bFWnYaf32NwiTs7j7qym%2f%2bI%2bfA2JUpan9A3%2fcQNnVarImiljhv6X1vGI1h%2fPxi0PtQPKg8ffPTXdFLok%2fzeZDpprEEeW34axU6%2b6YFKcmH3bAm%2fssYCoc%3d&fich=IniciativasXVII_json.txt&Inline=true",
    },
]
DATASET_NAMES = [d["name"] for d in DATASETS]

# Datasets whose changes warrant a full transform (agenda is archived only)
CORE_DATASETS = ["informacao_base", "iniciativas", "atividades"]

# Scraped HTML sources (static SharePoint pages, no browser needed)
PARLAMENTO_BASE_URL = "https://www.parlamento.pt"
MEETING_LIST_URL = f"{PARLAMENTO_BASE_URL}/DeputadoGP/Paginas/reunioesplenarias.aspx"
MEETING_DETAIL_URL = f"{PARLAMENTO_BASE_URL}/DeputadoGP/Paginas/DetalheReuniaoPlenaria.aspx"
BIOGRAPHY_URL = f"{PARLAMENTO_BASE_URL}/DeputadoGP/Paginas/Biografia.aspx"
PHOTO_URL = "https://app.parlamento.pt/webutils/getimage.aspx"

POLITENESS_UA = "parlwatch-bot (+https://github.com/parlwatch)"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_flag(name: str, default: bool = True) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in ("false", "0", "no", "off")


@dataclass(frozen=True)
class Settings:
    """Run-time tunables for one pipeline run."""

    db_path: str = str(DB_PATH)
    snapshot_dir: Path = SNAPSHOT_DIR
    http_timeout: float = 30.0
    user_agent: str = POLITENESS_UA
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    db_batch_size: int = 50
    scrape_delay: float = 0.5
    biography_ttl_days: int = 7
    default_legislature: int = 17
    sync_attendance: bool = True
    sync_biographies: bool = True
    min_deputies: int = 200
    min_parties: int = 5


def load_settings() -> Settings:
    """Build ``Settings`` from the environment, falling back to defaults."""
    return Settings(
        db_path=os.environ.get("PARLWATCH_DB_PATH") or str(DB_PATH),
        snapshot_dir=Path(os.environ.get("PARLWATCH_SNAPSHOT_DIR") or SNAPSHOT_DIR),
        http_timeout=_env_float("HTTP_TIMEOUT", 30.0),
        user_agent=os.environ.get("USER_AGENT") or POLITENESS_UA,
        max_retries=_env_int("MAX_RETRIES", 3),
        retry_base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
        retry_max_delay=_env_float("RETRY_MAX_DELAY", 30.0),
        db_batch_size=_env_int("DB_BATCH_SIZE", 50),
        scrape_delay=_env_float("SCRAPE_DELAY", 0.5),
        biography_ttl_days=_env_int("BIOGRAPHY_TTL_DAYS", 7),
        default_legislature=_env_int("DEFAULT_LEGISLATURE", 17),
        sync_attendance=_env_flag("SYNC_ATTENDANCE"),
        sync_biographies=_env_flag("SYNC_BIOGRAPHIES"),
        min_deputies=_env_int("MIN_DEPUTIES", 200),
        min_parties=_env_int("MIN_PARTIES", 5),
    )
