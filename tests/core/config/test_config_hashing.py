# tests/core/config/test_config_hashing.py
"""
Testes do hashing canônico.

O mesmo algoritmo (SHA-256 do JSON canônico) identifica:
- a configuração efetiva
- chaves de população na tabela de jobs
- pedidos de cache

Invariantes:
    - O hash retornado possui 64 caracteres hexadecimais
    - Estruturas equivalentes produzem o mesmo hash
"""

import hashlib
import json
from datetime import date
from decimal import Decimal

import numpy as np
import pytest

from tierflow.core.config.hashing import compute_config_hash, compute_key_hash


def _canonical_json_bytes(obj: dict) -> bytes:
    """Serialização JSON canônica de referência, usada apenas nos testes."""
    s = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def test_hash_is_deterministic():
    h1 = compute_config_hash({"b": 2, "a": 1})
    h2 = compute_config_hash({"a": 1, "b": 2})

    assert h1 == h2
    assert isinstance(h1, str)
    assert len(h1) == 64


def test_hash_matches_sha256_of_canonical_json():
    """
    Verifica que o hash corresponde exatamente ao SHA-256 do JSON canônico.

    Decisões arquiteturais:
        - Chaves ordenadas, separadores compactos, UTF-8
    """
    cfg = {"populate": {"reserve_jobs": True}, "safemode": False}

    expected = hashlib.sha256(_canonical_json_bytes(cfg)).hexdigest()

    assert compute_config_hash(cfg) == expected


def test_hash_changes_on_override():
    base = {"populate": {"reserve_jobs": False}}
    changed = {"populate": {"reserve_jobs": True}}

    assert compute_config_hash(base) != compute_config_hash(changed)


def test_config_hash_rejects_non_dict():
    with pytest.raises(TypeError):
        compute_config_hash(["not", "a", "dict"])


def test_key_hash_ignores_numpy_scalars_and_order():
    """
    Chaves lidas do banco (numpy) e chaves literais têm o mesmo hash.
    """
    literal = {"mouse_id": 3, "session_id": 1}
    fetched = {"session_id": np.int64(1), "mouse_id": np.int64(3)}

    assert compute_key_hash(literal) == compute_key_hash(fetched)


def test_key_hash_serializes_database_values():
    key = {"day": date(2024, 1, 2), "amount": Decimal("1.50"), "raw": b"\x00\x01"}

    h = compute_key_hash(key)

    assert len(h) == 64
    assert h == compute_key_hash(dict(key))
    assert h != compute_key_hash({"day": date(2024, 1, 3), "amount": Decimal("1.50"), "raw": b"\x00\x01"})


def test_key_hash_rejects_non_mapping():
    with pytest.raises(TypeError):
        compute_key_hash([("mouse_id", 1)])
