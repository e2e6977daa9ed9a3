# tests/core/backup/test_backup.py
"""
Testes de backup e restauração das tabelas de entrada (lookup/manual).

Os testes asseguram que:
- cada tabela vira um arquivo `<ClassName>.joblib` no diretório do dia
- as tabelas são gravadas em ordem de nível
- a restauração reinsere as tuplas respeitando as chaves estrangeiras
- datas vindas do driver como objetos `date` são restauradas como texto ISO
"""

from datetime import date
from pathlib import Path

import pytest
from conftest import FOREIGN_KEYS_ON, build_lab_metadata

from tierflow.core.backup.store import BackupFileMeta, BackupStore
from tierflow.core.connection.connection import Connection
from tierflow.core.schema.schema import Schema

DAY = date(2024, 1, 2)


@pytest.fixture
def fresh_schema(tmp_path, dummy_config):
    """Schema de laboratório vazio em um segundo banco."""
    conn = Connection(f"sqlite:///{tmp_path / 'restored.db'}", init_query=FOREIGN_KEYS_ON)
    meta, _ = build_lab_metadata()
    meta.create_all(conn.engine)
    yield Schema(conn, config=dummy_config)
    conn.close()
    conn.engine.dispose()


def test_backup_writes_one_file_per_table_in_level_order(filled_schema, tmp_path):
    metas = filled_schema.backup(tmp_path / "backups", day=DAY)

    assert [m.table for m in metas] == ["main.Species", "main.Mouse", "main.Session", "main.Surgery"]
    assert [m.rows for m in metas] == [1, 2, 4, 1]

    snapshot = tmp_path / "backups" / "main" / "2024-01-02"
    assert Path(metas[1].path) == snapshot / "Mouse.joblib"
    assert [p.name for p in BackupStore.list_files(snapshot)] == [
        "Mouse.joblib",
        "Session.joblib",
        "Species.joblib",
        "Surgery.joblib",
    ]


def test_backup_contents(filled_schema, tmp_path):
    filled_schema.backup(tmp_path, day=DAY)

    rows = BackupStore.load(tmp_path / "main" / "2024-01-02" / "Session.joblib")

    assert len(rows) == 4
    assert {"mouse_id": 1, "session_id": 1, "weight": 20.5, "note": "baseline"} in rows


def test_backup_with_restriction_and_tiers(filled_schema, tmp_path):
    metas = filled_schema.backup(tmp_path, restriction={"mouse_id": 1}, day=DAY)
    assert {m.table: m.rows for m in metas} == {
        "main.Species": 1,
        "main.Mouse": 1,
        "main.Session": 2,
        "main.Surgery": 1,
    }

    lookups = filled_schema.backup(tmp_path / "lookups", tiers=["lookup"], day=DAY)
    assert [m.table for m in lookups] == ["main.Species"]


def test_restore_into_an_empty_schema(filled_schema, fresh_schema, tmp_path):
    filled_schema.backup(tmp_path, day=DAY)

    inserted = fresh_schema.restore(tmp_path / "main" / "2024-01-02")

    assert inserted == {"main.Species": 1, "main.Mouse": 2, "main.Session": 4, "main.Surgery": 1}
    assert fresh_schema["session"].fetch(order_by=["mouse_id", "session_id"]) == filled_schema["session"].fetch(
        order_by=["mouse_id", "session_id"]
    )

    # restaurar de novo não duplica nada
    assert sum(fresh_schema.restore(tmp_path / "main" / "2024-01-02").values()) == 0


def test_store_errors_on_missing_paths(tmp_path):
    with pytest.raises(FileNotFoundError):
        BackupStore.load(tmp_path / "Nope.joblib")
    with pytest.raises(FileNotFoundError):
        BackupStore.list_files(tmp_path / "missing")


def test_store_save_and_metadata(tmp_path):
    store = BackupStore(root=tmp_path)

    meta = store.save(database="lab", class_name="lab.Mouse", contents=[{"mouse_id": 1}], day=DAY)

    assert isinstance(meta, BackupFileMeta)
    assert meta.to_dict() == {
        "table": "lab.Mouse",
        "path": str(tmp_path / "lab" / "2024-01-02" / "Mouse.joblib"),
        "rows": 1,
        "format": "joblib",
        "version": "v1",
    }
    assert BackupStore.load(meta.path) == [{"mouse_id": 1}]
    assert store.snapshot_dir("lab").name == date.today().strftime("%Y-%m-%d")


def test_restore_accepts_date_objects(fresh_schema, tmp_path):
    """Drivers que devolvem `datetime.date` produzem backups restauráveis."""
    store = BackupStore(root=tmp_path)
    store.save(database="main", class_name="main.Species", contents=[{"species": "mus", "description": ""}], day=DAY)
    store.save(
        database="main",
        class_name="main.Mouse",
        contents=[
            {"mouse_id": 1, "species": "mus", "dob": date(2020, 1, 1)},
            {"mouse_id": 2, "species": "mus", "dob": None},
        ],
        day=DAY,
    )

    inserted = fresh_schema.restore(tmp_path / "main" / "2024-01-02")

    assert inserted == {"main.Species": 1, "main.Mouse": 2}
    assert fresh_schema["mouse"].fetch("mouse_id", "dob", order_by="mouse_id") == [
        {"mouse_id": 1, "dob": "2020-01-01"},
        {"mouse_id": 2, "dob": None},
    ]
