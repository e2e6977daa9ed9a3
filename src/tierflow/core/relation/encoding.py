# src/tierflow/core/relation/encoding.py
"""
Validação e codificação de tuplas para insert/update.

Regras de codificação por categoria de coluna:
    - string  → parâmetro string (apenas `str` é aceito)
    - blob    → parâmetro binário (bytes/bytearray/memoryview/ndarray)
    - numérica:
        * bool                → inteiro de 8 bits (0/1)
        * NaN / None          → coluna omitida (NULL em auto-incremento)
        * bigint [unsigned]   → `int` exato
        * demais              → representação fixa de 16 dígitos significativos

Colunas decimais são verificadas antes da codificação:
    - faixa: |v| <= 10^(p-s) - 10^-s
    - precisão: erro relativo de arredondamento abaixo da tolerância
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from tierflow.core.exceptions import (
    DecimalPrecisionError,
    DecimalRangeError,
    TypeMismatchError,
    UnknownFieldError,
)
from tierflow.core.schema.types import ColumnDescriptor, TableDescriptor

_DECIMAL_RE = re.compile(r"^(?:decimal|numeric)\((\d+),(\d+)\)")

# marcador de coluna omitida
OMIT = object()


def decimal_spec(column: ColumnDescriptor) -> Optional[Tuple[int, int]]:
    """(precisão, escala) de uma coluna decimal, ou None se não declarada."""
    match = _DECIMAL_RE.match(column.type)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (float, np.floating)):
        return math.isnan(value)
    if isinstance(value, Decimal):
        return value.is_nan()
    return False


def _as_scalar(column: ColumnDescriptor, value: Any) -> Any:
    if isinstance(value, np.ndarray):
        if value.size != 1:
            raise TypeMismatchError(
                f"The field {column.name} must be a numeric scalar value",
                details={"field": column.name, "shape": list(value.shape)},
            )
        value = value.reshape(()).item()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool) or isinstance(value, (int, float, Decimal)):
        return value
    raise TypeMismatchError(
        f"The field {column.name} must be a numeric scalar value",
        details={"field": column.name, "received": type(value).__name__},
    )


def check_decimal(column: ColumnDescriptor, value: Any, tolerance: float = math.inf) -> None:
    """
    Verifica faixa e precisão de um valor para uma coluna `decimal(p,s)`.

    Raises:
        DecimalRangeError: |v| excede 10^(p-s) - 10^-s.
        DecimalPrecisionError: erro relativo de arredondamento >= tolerância.
    """
    spec = decimal_spec(column)
    if spec is None or _is_missing(value):
        return
    precision, scale = spec
    v = float(value)
    max_value = 10.0 ** (precision - scale) - 10.0 ** (-scale)
    if abs(v) > max_value:
        raise DecimalRangeError(
            f'Values for field "{column.name}" out of range',
            details={"field": column.name, "value": v, "max": max_value},
        )
    if v == 0:
        return
    ulp = 10.0 ** (-scale)
    rel_err = abs(round(v / ulp) * ulp - v) / abs(v)
    if not rel_err < tolerance:
        raise DecimalPrecisionError(
            f'Values for field "{column.name}" have excessive roundoff error',
            details={"field": column.name, "value": v, "relative_error": rel_err, "tolerance": tolerance},
        )


def temporal_as_text(descriptor: TableDescriptor, row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Converte valores date/time/datetime de colunas string para texto ISO.

    Drivers como os de MySQL e PostgreSQL devolvem colunas de data como
    objetos `datetime`; o insert só aceita `str` nessas colunas.
    """
    strings = {c.name for c in descriptor.columns if c.is_string}
    out = dict(row)
    for name, value in row.items():
        if name not in strings:
            continue
        if isinstance(value, datetime):
            out[name] = value.isoformat(sep=" ")
        elif isinstance(value, (date, time)):
            out[name] = value.isoformat()
    return out


def encode_value(column: ColumnDescriptor, value: Any) -> Any:
    """Codifica um valor para a coluna; retorna `OMIT` quando a coluna deve ser omitida."""
    if column.is_string:
        if value is None:
            return OMIT
        if not isinstance(value, str):
            raise TypeMismatchError(
                f"The field {column.name} must be a character string",
                details={"field": column.name, "received": type(value).__name__},
            )
        return value

    if column.is_blob:
        if value is None:
            return OMIT
        if isinstance(value, np.ndarray):
            if value.dtype == np.bool_:
                value = value.astype(np.uint8)
            return value.tobytes()
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        raise TypeMismatchError(
            f"The field {column.name} must be binary data",
            details={"field": column.name, "received": type(value).__name__},
        )

    value = None if value is None else _as_scalar(column, value)
    if _is_missing(value):
        return None if column.is_autoincrement else OMIT
    if isinstance(value, bool):
        return int(value)
    if column.is_bigint:
        return int(value)
    encoded = float(format(float(value), ".16g"))
    if column.is_integer and encoded.is_integer():
        return int(encoded)
    return encoded


def encode_tuple(
    descriptor: TableDescriptor,
    row: Mapping[str, Any],
    tolerance: float = math.inf,
) -> Dict[str, Any]:
    """
    Valida e codifica uma tupla completa.

    Raises:
        UnknownFieldError: campo não declarado na tabela.
        TypeMismatchError / DecimalRangeError / DecimalPrecisionError.
    """
    heading = descriptor.heading
    unknown = [name for name in row if name not in heading]
    if unknown:
        raise UnknownFieldError(
            f"Field {unknown[0]} is not found in the table {descriptor.class_name}",
            details={"fields": unknown, "table": descriptor.class_name},
        )

    encoded: Dict[str, Any] = {}
    for column in descriptor.columns:
        if column.name not in row:
            continue
        value = row[column.name]
        if column.is_decimal:
            check_decimal(column, None if value is None else _as_scalar(column, value), tolerance)
        result = encode_value(column, value)
        if result is not OMIT:
            encoded[column.name] = result
    return encoded
