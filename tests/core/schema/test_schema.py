# tests/core/schema/test_schema.py
"""
Testes de integração do `Schema` sobre SQLite.

Os testes asseguram que:
- o catálogo real (Inspector do SQLAlchemy) alimenta o loader e o grafo
- tiers, categorias de coluna, arestas e níveis refletem a DDL
- relvars são resolvidos por nome de tabela ou nome de classe
- o schema é dono das tabelas `~jobs` e `~cache_requests`
- `reload` reconstrói os snapshots a partir do catálogo

Limites explícitos:
    - Não exercita MySQL ou PostgreSQL
"""

import pytest
import sqlalchemy as sa

from tierflow.core.exceptions import SchemaLoadError, UnknownTableError
from tierflow.core.schema.catalog import Catalog
from tierflow.core.schema.schema import Schema
from tierflow.core.schema.types import EdgeKind, TableId, Tier


def _id(name):
    return TableId("main", name)


def test_tables_are_classified_by_prefix(lab_schema):
    tiers = {d.name: d.tier for d in lab_schema.tables}

    assert tiers == {
        "#species": Tier.LOOKUP,
        "mouse": Tier.MANUAL,
        "session": Tier.MANUAL,
        "surgery": Tier.MANUAL,
        "_scan": Tier.IMPORTED,
        "__scan_stats": Tier.COMPUTED,
        "__session_summary": Tier.COMPUTED,
    }


def test_columns_are_categorized(lab_schema):
    session = lab_schema.descriptor("session")
    scan = lab_schema.descriptor("_scan")
    mouse = lab_schema.descriptor("mouse")

    assert session.primary_key == ["mouse_id", "session_id"]
    assert session.column("weight").is_decimal
    assert session.column("note").is_string
    assert session.column("note").is_nullable
    assert scan.column("frames").is_blob
    assert scan.column("depth").is_numeric
    assert mouse.column("dob").is_string
    assert not mouse.column("species").is_nullable


def test_dependencies_distinguish_hierarchical_and_associative(lab_schema):
    graph = lab_schema.dependencies

    assert graph.edge(_id("session"), _id("mouse")) == EdgeKind.HIERARCHICAL
    assert graph.edge(_id("_scan"), _id("session")) == EdgeKind.HIERARCHICAL
    assert graph.edge(_id("surgery"), _id("mouse")) == EdgeKind.ASSOCIATIVE
    assert graph.edge(_id("mouse"), _id("#species")) == EdgeKind.ASSOCIATIVE
    assert set(graph.children(_id("session"))) == {_id("_scan"), _id("__session_summary")}


def test_levels(lab_schema):
    """
    Verifica os níveis hierárquicos do schema de laboratório.

    Invariantes:
        - nível(pai) < nível(filho) para toda aresta
    """
    levels = lab_schema.levels

    assert levels[_id("#species")] == 0
    assert levels[_id("mouse")] == 1
    assert levels[_id("session")] == 2
    assert levels[_id("surgery")] == 2
    assert levels[_id("_scan")] == 3
    assert levels[_id("__session_summary")] == 3
    assert levels[_id("__scan_stats")] == 4


def test_catalog_reports_hierarchical_flag(connection, lab_tables):
    fks = Catalog(connection).list_foreign_keys("main")
    by_pair = {(fk["from_table"], fk["to_table"]): fk for fk in fks}

    assert by_pair[("session", "mouse")]["hierarchical"] is True
    assert by_pair[("surgery", "mouse")]["hierarchical"] is False
    assert by_pair[("session", "mouse")]["to_schema"] == "main"


@pytest.mark.parametrize("ref", ["mouse", "Mouse", "main.Mouse", _id("mouse")])
def test_descriptor_resolution(lab_schema, ref):
    assert lab_schema.descriptor(ref).table_id == _id("mouse")


def test_unknown_table_raises(lab_schema):
    with pytest.raises(UnknownTableError):
        lab_schema.relvar("Nope")


def test_relvar_exposes_table_identity(lab_schema):
    scan = lab_schema["_scan"]

    assert scan.class_name == "main.Scan"
    assert scan.tier == Tier.IMPORTED
    assert scan.full_name == "`main`.`_scan`"
    assert scan.heading == ["mouse_id", "session_id", "scan_id", "depth", "frames"]
    assert scan.primary_key == ["mouse_id", "session_id", "scan_id"]


def test_describe_lists_tables(lab_schema):
    text = lab_schema.describe()

    assert text.startswith("schema main")
    assert "ScanStats" in text
    assert "computed" in text
    assert "Species" in text


def test_owned_tables_are_created_and_loaded(lab_schema):
    jobs = lab_schema.jobs
    requests = lab_schema.cache_requests

    assert jobs.name == "~jobs"
    assert requests.name == "~cache_requests"
    assert lab_schema.descriptor("~jobs").tier == Tier.JOB
    assert lab_schema.descriptor("~cache_requests").tier == Tier.JOB
    assert lab_schema.levels[_id("~jobs")] == 0


def test_reload_picks_up_new_tables(connection, lab_schema):
    assert lab_schema.loaded is False
    assert len(lab_schema.tables) == 7
    assert lab_schema.loaded is True

    sa.Table(
        "__mouse_age",
        sa.MetaData(),
        sa.Column("mouse_id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("age_days", sa.Integer, nullable=False),
    ).create(connection.engine)

    assert len(lab_schema.tables) == 7
    lab_schema.reload(force=True)
    assert len(lab_schema.tables) == 8
    assert lab_schema.descriptor("__mouse_age").tier == Tier.COMPUTED


def test_unsupported_column_type_aborts_schema_load(connection):
    sa.Table(
        "mouse",
        sa.MetaData(),
        sa.Column("mouse_id", sa.Integer, primary_key=True),
        sa.Column("profile", sa.JSON),
    ).create(connection.engine)

    with pytest.raises(SchemaLoadError):
        Schema(connection).tables


def test_prefix_restricts_the_schema(connection):
    meta = sa.MetaData()
    for name in ("lab_mouse", "lab__stats", "mouse"):
        sa.Table(name, meta, sa.Column("mouse_id", sa.Integer, primary_key=True, autoincrement=False))
    meta.create_all(connection.engine)

    schema = Schema(connection, prefix="lab_")

    assert {d.name: d.tier for d in schema.tables} == {"lab_mouse": Tier.MANUAL, "lab__stats": Tier.IMPORTED}
    assert repr(schema) == "<Schema main prefix='lab_'>"


def test_schema_registers_itself_on_the_connection(connection, lab_schema):
    assert lab_schema in connection.schemas
    schema, descriptor = connection.find_table(_id("session"))
    assert schema is lab_schema
    assert descriptor.name == "session"
    assert connection.find_table(_id("missing")) is None
