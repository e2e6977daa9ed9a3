# tests/core/populate/test_populate.py
"""
Testes do engine de auto-população (`AutoPopulate`).

Os testes asseguram que:
- apenas as chaves faltantes são computadas, uma transação por chave
- falhas por chave são isoladas, registradas no job e no resultado
- reservas feitas por outro worker fazem a chave ser pulada
- guardrails de configuração falham antes de qualquer chave

Limites explícitos:
    - Usa apenas a estratégia local (síncrona)
"""

import dataclasses

import pytest
import sqlalchemy as sa

from tierflow.core.connection.connection import Connection
from tierflow.core.exceptions import PopulationConfigError
from tierflow.core.populate.engine import AutoPopulate
from tierflow.core.populate.jobs import JobTable
from tierflow.core.populate.types import JobStatus, KeyStatus
from tierflow.core.schema.schema import Schema

FIRST = {"mouse_id": 1, "session_id": 1, "scan_id": 1}
SECOND = {"mouse_id": 1, "session_id": 1, "scan_id": 2}


@pytest.fixture
def stats_populator(filled_schema, make_stats):
    return AutoPopulate(
        filled_schema["__scan_stats"],
        filled_schema["_scan"],
        make_stats,
        jobs=filled_schema.jobs,
    )


def test_populate_computes_missing_keys_once(filled_schema, stats_populator):
    assert stats_populator.progress() == (4, 4)

    first = stats_populator.populate()
    second = stats_populator.populate()

    assert first.succeeded == 4
    assert first.failed == 0
    assert len(second) == 0
    assert stats_populator.progress() == (0, 4)
    assert (filled_schema["__scan_stats"] & {"mouse_id": 2}).fetch1("mean_intensity") == {"mean_intensity": 125.0}


def test_populate_respects_restrictions_and_max_keys(stats_populator):
    assert stats_populator.populate({"mouse_id": 2}).succeeded == 1
    assert stats_populator.progress({"mouse_id": 1}) == (3, 3)

    limited = stats_populator.populate(max_keys=2)

    assert len(limited) == 2
    assert [o.key for o in limited.outcomes] == [FIRST, SECOND]
    assert stats_populator.progress() == (1, 4)


def test_keys_are_processed_in_primary_key_order(stats_populator):
    result = stats_populator.populate()

    assert [o.key for o in result.outcomes] == [
        FIRST,
        SECOND,
        {"mouse_id": 1, "session_id": 2, "scan_id": 1},
        {"mouse_id": 2, "session_id": 1, "scan_id": 1},
    ]


def test_failures_are_isolated_and_recorded(filled_schema, make_stats):
    """
    A chave que falha é desfeita (rollback) e registrada como `error`;
    as demais seguem normalmente.
    """
    stats = filled_schema["__scan_stats"]

    def flaky(key):
        make_stats(key)
        if key == SECOND:
            raise RuntimeError("boom")

    populator = AutoPopulate(stats, filled_schema["_scan"], flaky, jobs=filled_schema.jobs)
    result = populator.populate()

    assert result.succeeded == 3
    assert result.failed == 1
    assert result.errors[0]["type"] == "COMPUTE_ERROR"
    assert result.errors[0]["message"] == "boom"
    assert not (stats & SECOND).exists()
    assert len(stats) == 3

    job = filled_schema.jobs.get(populator.job_key, SECOND)
    assert populator.job_key == "__scan_stats"
    assert job["status"] == JobStatus.ERROR.value
    assert job["error_message"] == "COMPUTE_ERROR: boom"


def test_unsuppressed_error_is_raised(filled_schema, make_stats):
    def failing(key):
        if key == SECOND:
            raise ValueError("bad frame")
        make_stats(key)

    populator = AutoPopulate(filled_schema["__scan_stats"], filled_schema["_scan"], failing)

    with pytest.raises(ValueError, match="bad frame"):
        populator.populate(suppress_errors=False)

    assert len(filled_schema["__scan_stats"]) == 1
    assert not filled_schema.connection.in_transaction


def test_configuration_guardrails(filled_schema, make_stats):
    stats = filled_schema["__scan_stats"]

    with pytest.raises(PopulationConfigError):
        AutoPopulate(stats, None, make_stats).populate()
    with pytest.raises(PopulationConfigError):
        AutoPopulate(stats, filled_schema["_scan"], None).populate()
    with pytest.raises(PopulationConfigError):
        AutoPopulate(stats, filled_schema["_scan"], make_stats).populate(reserve_jobs=True)

    assert len(stats) == 0


def test_key_reserved_elsewhere_is_skipped(db_url, filled_schema, stats_populator):
    other = Connection(db_url)
    try:
        assert JobTable(other, "main").reserve("__scan_stats", FIRST)

        result = stats_populator.populate(reserve_jobs=True)
    finally:
        other.close()
        other.engine.dispose()

    assert result.skipped == 1
    assert result.succeeded == 3
    assert not (filled_schema["__scan_stats"] & FIRST).exists()

    # reservas bem sucedidas são liberadas; resta apenas a do outro worker
    remaining = filled_schema.jobs.fetch("__scan_stats")
    assert len(remaining) == 1
    assert remaining[0]["status"] == JobStatus.RESERVED.value


def test_key_populated_after_the_snapshot_is_skipped(filled_schema, make_stats):
    def eager(key):
        make_stats(key)
        if key == FIRST:
            make_stats(SECOND)

    populator = AutoPopulate(filled_schema["__scan_stats"], filled_schema["_scan"], eager, jobs=filled_schema.jobs)
    result = populator.populate(reserve_jobs=True)

    assert result.succeeded == 3
    assert result.skipped == 1
    assert result.outcomes[1].status == KeyStatus.SKIPPED
    assert filled_schema.jobs.fetch("__scan_stats") == []


def test_completed_jobs_can_be_kept(filled_schema, make_stats):
    populator = AutoPopulate(
        filled_schema["__scan_stats"],
        filled_schema["_scan"],
        make_stats,
        jobs=filled_schema.jobs,
        config={"populate": {"keep_completed_jobs": True}},
    )

    populator.populate(reserve_jobs=True)

    assert len(filled_schema.jobs.fetch("__scan_stats", status=JobStatus.DONE)) == 4


def test_reserve_jobs_default_comes_from_config(filled_schema, make_stats):
    populator = AutoPopulate(
        filled_schema["__scan_stats"],
        filled_schema["_scan"],
        make_stats,
        jobs=filled_schema.jobs,
        config={"populate": {"reserve_jobs": True, "keep_completed_jobs": True}},
    )

    populator.populate({"mouse_id": 2})

    assert len(filled_schema.jobs.fetch("__scan_stats")) == 1


def test_context_events_follow_the_outcomes(stats_populator):
    result = stats_populator.populate()
    ctx = stats_populator.last_context

    assert ctx.run_id == result.run_id
    assert ctx.target == "main.ScanStats"
    assert len(ctx.events_for(KeyStatus.SUCCESS.value)) == 4
    assert all(e["key_hash"] for e in ctx.events)
    assert [f.name for f in dataclasses.fields(ctx)] == ["run_id", "target", "config", "created_at", "events"]


def test_make_args_are_forwarded(filled_schema):
    summary = filled_schema["__session_summary"]
    scan = filled_schema["_scan"]

    def make_summary(key, offset):
        summary.insert1(dict(key, n_scans=(scan & key).count() + offset))

    populator = AutoPopulate(summary, filled_schema["session"], make_summary)
    result = populator.populate(make_args=(10,))

    assert result.succeeded == 4
    assert (summary & {"mouse_id": 2, "session_id": 2}).fetch1("n_scans") == {"n_scans": 10}
    assert (summary & {"mouse_id": 1, "session_id": 1}).fetch1("n_scans") == {"n_scans": 12}


def test_populate_marks_the_target_as_populated(filled_schema, stats_populator):
    assert filled_schema.is_populated(filled_schema["__scan_stats"].table_id)
    assert not filled_schema["__scan_stats"].is_subtable
    assert filled_schema["__session_summary"].is_subtable


def test_shared_secondary_attributes_do_not_make_keys_missing(connection, dummy_config):
    """
    Fonte e alvo compartilham `note` com valores diferentes: a diferença de
    conjuntos considera só a chave primária do alvo.
    """
    meta = sa.MetaData()
    src = sa.Table(
        "src",
        meta,
        sa.Column("k", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("note", sa.String(32), nullable=False),
    )
    sa.Table(
        "__tgt",
        meta,
        sa.Column("k", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("note", sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(["k"], [src.c.k]),
    )
    meta.create_all(connection.engine)
    schema = Schema(connection, config=dummy_config)
    schema["src"].insert1({"k": 1, "note": "raw"})
    target = schema["__tgt"]

    def make_derived(key):
        target.insert1(dict(key, note="derived"))

    populator = AutoPopulate(target, schema["src"], make_derived)

    first = populator.populate()
    second = populator.populate()

    assert first.succeeded == 1
    assert len(second) == 0
    assert populator.progress() == (0, 1)
    assert target.fetch1("note") == {"note": "derived"}
