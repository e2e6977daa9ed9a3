# tests/core/relation/test_encoding.py
"""
Testes da validação e codificação de valores por categoria de coluna.

Limites explícitos:
    - Não acessa o banco (descritores construídos em memória)
"""

import math

import numpy as np
import pytest

from tierflow.core.exceptions import (
    DecimalPrecisionError,
    DecimalRangeError,
    TypeMismatchError,
    UnknownFieldError,
)
from tierflow.core.relation.encoding import OMIT, check_decimal, decimal_spec, encode_tuple, encode_value
from tierflow.core.schema.types import ColumnDescriptor, TableDescriptor, TableId, Tier


def _numeric(name="x", type_="double", **kw):
    return ColumnDescriptor(name=name, type=type_, is_key=False, is_nullable=True, is_numeric=True, is_string=False, is_blob=False, **kw)


def _string(name="s"):
    return ColumnDescriptor(name=name, type="varchar(32)", is_key=False, is_nullable=True, is_numeric=False, is_string=True, is_blob=False)


def _blob(name="b"):
    return ColumnDescriptor(name=name, type="longblob", is_key=False, is_nullable=True, is_numeric=False, is_string=False, is_blob=True)


def test_column_must_have_exactly_one_category():
    with pytest.raises(ValueError):
        ColumnDescriptor(name="x", type="int", is_key=False, is_nullable=True, is_numeric=True, is_string=True, is_blob=False)


def test_numeric_encoding():
    assert encode_value(_numeric(), True) == 1
    assert encode_value(_numeric(), np.float32(0.5)) == 0.5
    assert encode_value(_numeric(), np.array([2.5])) == 2.5
    assert encode_value(_numeric(), 0.1 + 0.2) == float(format(0.1 + 0.2, ".16g"))
    assert encode_value(_numeric(type_="int"), 3.0) == 3
    assert isinstance(encode_value(_numeric(type_="int"), np.int64(3)), int)


def test_bigint_is_exact():
    big = 2**62 + 1
    assert encode_value(_numeric(type_="bigint unsigned"), big) == big


def test_missing_numeric_values_are_omitted():
    """
    NaN/None em coluna numérica omite a coluna (o banco aplica o default);
    em auto-incremento vira NULL explícito.
    """
    assert encode_value(_numeric(), None) is OMIT
    assert encode_value(_numeric(), float("nan")) is OMIT
    assert encode_value(_numeric(is_autoincrement=True), None) is None


def test_numeric_rejects_non_scalars():
    with pytest.raises(TypeMismatchError):
        encode_value(_numeric(), np.array([1.0, 2.0]))
    with pytest.raises(TypeMismatchError):
        encode_value(_numeric(), "3")


def test_string_encoding():
    assert encode_value(_string(), "abc") == "abc"
    assert encode_value(_string(), None) is OMIT
    with pytest.raises(TypeMismatchError):
        encode_value(_string(), 5)


def test_blob_encoding():
    mask = np.array([True, False, True])

    assert encode_value(_blob(), b"\x00\x01") == b"\x00\x01"
    assert encode_value(_blob(), bytearray(b"ab")) == b"ab"
    assert encode_value(_blob(), mask) == mask.astype(np.uint8).tobytes()
    assert encode_value(_blob(), np.arange(3, dtype=np.int16)) == np.arange(3, dtype=np.int16).tobytes()
    with pytest.raises(TypeMismatchError):
        encode_value(_blob(), "text")


def test_decimal_range_and_precision():
    """
    Para `decimal(5,2)`: |v| <= 999.99; o erro relativo de arredondamento
    precisa ficar abaixo da tolerância.
    """
    column = _numeric(name="weight", type_="decimal(5,2)")

    assert decimal_spec(column) == (5, 2)
    check_decimal(column, 999.99)
    check_decimal(column, -999.99)
    check_decimal(column, 12.345)  # tolerância infinita por padrão
    check_decimal(column, 0.0, tolerance=0.0)

    with pytest.raises(DecimalRangeError):
        check_decimal(column, 1000.0)
    with pytest.raises(DecimalPrecisionError):
        check_decimal(column, 12.345, tolerance=1e-6)
    check_decimal(column, 12.34, tolerance=1e-6)


def test_decimal_spec_is_none_for_other_types():
    assert decimal_spec(_numeric(type_="double")) is None
    check_decimal(_numeric(type_="double"), 1e300, tolerance=0.0)


def test_encode_tuple_rejects_unknown_fields():
    descriptor = TableDescriptor(
        table_id=TableId("lab", "mouse"),
        tier=Tier.MANUAL,
        columns=(_numeric(name="mouse_id", type_="int"), _string(name="species")),
    )

    assert encode_tuple(descriptor, {"mouse_id": 1, "species": "mus"}) == {"mouse_id": 1, "species": "mus"}
    assert encode_tuple(descriptor, {"mouse_id": 1, "species": None}) == {"mouse_id": 1}

    with pytest.raises(UnknownFieldError) as excinfo:
        encode_tuple(descriptor, {"mouse_id": 1, "color": "grey"})
    assert excinfo.value.details["fields"] == ["color"]


def test_encode_tuple_checks_decimals():
    descriptor = TableDescriptor(
        table_id=TableId("lab", "session"),
        tier=Tier.MANUAL,
        columns=(_numeric(name="weight", type_="decimal(5,2)"),),
    )

    assert encode_tuple(descriptor, {"weight": np.float64(20.5)}) == {"weight": 20.5}
    assert encode_tuple(descriptor, {"weight": math.nan}) == {}
    with pytest.raises(DecimalRangeError):
        encode_tuple(descriptor, {"weight": 5000})
