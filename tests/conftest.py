# tests/conftest.py
"""
Fixtures compartilhados para testes do tierflow.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas
- um banco SQLite em arquivo, isolado por teste (tmp_path)
- o schema de laboratório usado pelos testes de integração
- um schema populado com tuplas de exemplo

O schema de laboratório cobre todos os tiers e os dois tipos de aresta:

    #species            (lookup)
    mouse               (manual)    → #species   associativa
    session             (manual)    → mouse      hierárquica
    surgery             (manual)    → mouse      associativa
    _scan               (imported)  → session    hierárquica
    __scan_stats        (computed)  → _scan      hierárquica
    __session_summary   (computed)  → session    hierárquica

Decisões arquiteturais:
    - As tabelas são declaradas via DDL do SQLAlchemy, nunca pelo tierflow
    - Chaves estrangeiras são exigidas pelo banco (`PRAGMA foreign_keys = ON`)
    - O banco vive em arquivo para permitir várias conexões simultâneas

Invariantes:
    - Cada teste recebe um banco novo e vazio
    - Nenhuma fixture depende de rede ou de serviços externos
    - Conexões abertas são fechadas no teardown

Limites explícitos:
    - Não exercita MySQL ou PostgreSQL
    - Não contém lógica de domínio do tierflow

Este módulo existe como infraestrutura de teste e não
como validação funcional do framework.
"""

from pathlib import Path
from typing import Dict, Tuple

import pytest
import sqlalchemy as sa

FOREIGN_KEYS_ON = "PRAGMA foreign_keys = ON"


def build_lab_metadata() -> Tuple[sa.MetaData, Dict[str, sa.Table]]:
    """Declara as tabelas do schema de laboratório em um `MetaData` novo."""
    meta = sa.MetaData()
    species = sa.Table(
        "#species",
        meta,
        sa.Column("species", sa.String(32), primary_key=True),
        sa.Column("description", sa.String(255), nullable=False, server_default=""),
    )
    mouse = sa.Table(
        "mouse",
        meta,
        sa.Column("mouse_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("species", sa.String(32), nullable=False),
        sa.Column("dob", sa.Date, nullable=True),
        sa.ForeignKeyConstraint(["species"], [species.c.species]),
    )
    session = sa.Table(
        "session",
        meta,
        sa.Column("mouse_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("session_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("weight", sa.Numeric(5, 2), nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.ForeignKeyConstraint(["mouse_id"], [mouse.c.mouse_id]),
    )
    surgery = sa.Table(
        "surgery",
        meta,
        sa.Column("surgery_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("mouse_id", sa.Integer, nullable=False),
        sa.Column("procedure", sa.String(64), nullable=False, server_default=""),
        sa.ForeignKeyConstraint(["mouse_id"], [mouse.c.mouse_id]),
    )
    scan = sa.Table(
        "_scan",
        meta,
        sa.Column("mouse_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("session_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("scan_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("depth", sa.Float, nullable=False),
        sa.Column("frames", sa.LargeBinary, nullable=True),
        sa.ForeignKeyConstraint(["mouse_id", "session_id"], [session.c.mouse_id, session.c.session_id]),
    )
    scan_stats = sa.Table(
        "__scan_stats",
        meta,
        sa.Column("mouse_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("session_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("scan_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("mean_intensity", sa.Float, nullable=False),
        sa.ForeignKeyConstraint(
            ["mouse_id", "session_id", "scan_id"],
            [scan.c.mouse_id, scan.c.session_id, scan.c.scan_id],
        ),
    )
    session_summary = sa.Table(
        "__session_summary",
        meta,
        sa.Column("mouse_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("session_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("n_scans", sa.Integer, nullable=False),
        sa.ForeignKeyConstraint(["mouse_id", "session_id"], [session.c.mouse_id, session.c.session_id]),
    )
    tables = {
        "species": species,
        "mouse": mouse,
        "session": session,
        "surgery": surgery,
        "scan": scan,
        "scan_stats": scan_stats,
        "session_summary": session_summary,
    }
    return meta, tables


# =====================================================
# Config fixtures
# =====================================================

@pytest.fixture
def project_like_config_defaults_yaml() -> str:
    """
    Fixture que fornece um YAML de configuração padrão (defaults) semelhante ao uso real.

    Decisões arquiteturais:
        - Configuração fornecida como string para evitar I/O implícito
        - Estrutura alinhada ao `defaults.yaml` empacotado

    Invariantes:
        - YAML sintaticamente válido
        - Pode ser combinado com config local sem ambiguidade

    Returns:
        str: Conteúdo YAML representando configuração padrão (defaults).
    """
    return """\
connection:
  url: "sqlite://"
  reconnect_transaction: true
safemode: true
populate:
  reserve_jobs: false
  suppress_errors: true
logging:
  level: INFO
"""


@pytest.fixture
def project_like_config_local_yaml() -> str:
    """
    Fixture que fornece um YAML de configuração local (override).

    Invariantes:
        - Representa apenas overrides locais
        - Não contém configuração completa do projeto

    Returns:
        str: Conteúdo YAML representando configuração local de override.
    """
    return """\
safemode: false
populate:
  reserve_jobs: true
"""


@pytest.fixture
def dummy_config() -> dict:
    """Configuração mínima já resolvida: delete não assistido, erros suprimidos."""
    return {
        "safemode": False,
        "populate": {"reserve_jobs": False, "suppress_errors": True, "keep_completed_jobs": False},
    }


# =====================================================
# Banco de dados
# =====================================================

@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """URL de um banco SQLite em arquivo, exclusivo do teste."""
    return f"sqlite:///{tmp_path / 'lab.db'}"


@pytest.fixture
def connection(db_url):
    """
    Fixture que fornece uma `Connection` sobre o banco do teste.

    Invariantes:
        - Chaves estrangeiras são exigidas a cada nova sessão
        - A conexão é fechada e a engine descartada no teardown
    """
    from tierflow.core.connection.connection import Connection

    conn = Connection(db_url, init_query=FOREIGN_KEYS_ON)
    yield conn
    conn.close()
    conn.engine.dispose()


@pytest.fixture
def lab_tables(connection) -> Dict[str, sa.Table]:
    """Cria as tabelas do schema de laboratório e retorna os objetos `Table`."""
    meta, tables = build_lab_metadata()
    meta.create_all(connection.engine)
    return tables


@pytest.fixture
def lab_schema(connection, lab_tables, dummy_config):
    """`Schema` carregado sobre o banco do teste (ainda sem tuplas)."""
    from tierflow.core.schema.schema import Schema

    return Schema(connection, config=dummy_config)


@pytest.fixture
def filled_schema(lab_schema):
    """
    Fixture que fornece o schema de laboratório com tuplas de exemplo.

    Conteúdo:
        - 1 espécie, 2 camundongos, 4 sessões (a sessão (2, 2) não tem scans)
        - 4 scans: (1,1,1), (1,1,2), (1,2,1), (2,1,1)
        - 1 cirurgia do camundongo 1
        - nenhuma tupla nas tabelas computadas
    """
    lab_schema["#species"].insert1({"species": "mus", "description": "mus musculus"})
    lab_schema["mouse"].insert(
        [
            {"mouse_id": 1, "species": "mus", "dob": "2020-01-01"},
            {"mouse_id": 2, "species": "mus", "dob": "2020-02-01"},
        ]
    )
    lab_schema["session"].insert(
        [
            {"mouse_id": 1, "session_id": 1, "weight": 20.5, "note": "baseline"},
            {"mouse_id": 1, "session_id": 2, "weight": 21.25},
            {"mouse_id": 2, "session_id": 1, "weight": 19.0},
            {"mouse_id": 2, "session_id": 2},
        ]
    )
    lab_schema["surgery"].insert1({"surgery_id": 1, "mouse_id": 1, "procedure": "window"})
    lab_schema["_scan"].insert(
        [
            {"mouse_id": 1, "session_id": 1, "scan_id": 1, "depth": 100.0},
            {"mouse_id": 1, "session_id": 1, "scan_id": 2, "depth": 150.0},
            {"mouse_id": 1, "session_id": 2, "scan_id": 1, "depth": 200.0},
            {"mouse_id": 2, "session_id": 1, "scan_id": 1, "depth": 250.0},
        ]
    )
    return lab_schema


@pytest.fixture
def make_stats(filled_schema):
    """Função `make` que computa `__scan_stats` a partir de `_scan`."""
    scan = filled_schema["_scan"]
    stats = filled_schema["__scan_stats"]

    def _make(key):
        depth = (scan & key).fetch1("depth")["depth"]
        stats.insert1(dict(key, mean_intensity=depth / 2))

    return _make
