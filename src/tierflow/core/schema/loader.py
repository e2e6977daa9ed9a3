# src/tierflow/core/schema/loader.py
"""
Loader de metadados do schema.

Lê tabelas e colunas do catálogo e produz o `TableRegistry` do schema:

    catálogo → DataFrame de colunas → classificação vetorizada → descritores

Regras de classificação:
    - O tier vem exclusivamente do prefixo do nome (ver `Tier`)
    - Nomes fora da expressão do schema são ignorados
    - Comentários de tabela são truncados no primeiro `$`
    - Tamanhos de inteiros são removidos (`int(11)` → `int`)
    - Cada coluna deve ser exatamente numérica, string ou blob

Limites explícitos:
    - Não lê chaves estrangeiras (ver schema.graph)
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional

import pandas as pd

from tierflow.core.exceptions import SchemaLoadError

from .catalog import Catalog
from .registry import TableRegistry
from .types import TIER_PREFIXES, ColumnDescriptor, TableDescriptor, TableId, Tier

logger = logging.getLogger(__name__)

NUMERIC_TYPES = r"(tiny|small|medium|big)?int|integer|decimal|numeric|double|float|real|bool(ean)?"
STRING_TYPES = r"(var)?char|enum|date|time|timestamp|datetime|text"
BLOB_TYPES = r"(tiny|medium|long)?blob|(var)?binary|bytea"

# o nome do tipo termina em '(', espaço ou fim da string
_BOUNDARY = r"(?=\(|\s|$)"

_INT_LENGTH_RE = r"((?:tiny|small|medium|big)?int(?:eger)?)\(\d+\)"

COLUMN_FIELDS = ["table", "name", "type", "is_key", "is_nullable", "default", "comment", "is_autoincrement"]


def table_pattern(prefix: str = "") -> str:
    """Expressão regular dos nomes de tabela de um schema com `prefix`."""
    return rf"^{re.escape(prefix)}(_|__|#|~)?[a-z][a-z0-9_]*$"


def classify_tier(name: str, prefix: str = "") -> Optional[Tier]:
    """Tier a partir do prefixo do nome; None quando o nome não é de tabela."""
    for tier, marker in TIER_PREFIXES:
        if re.match(rf"^{re.escape(prefix)}{re.escape(marker)}[a-z][a-z0-9_]*$", name):
            return tier
    return None


def _classify_columns(header: pd.DataFrame) -> pd.DataFrame:
    header = header.copy()
    types = (
        header["type"]
        .astype(str)
        .str.lower()
        .str.replace(r",\s+", ",", regex=True)
        .str.replace(_INT_LENGTH_RE, r"\1", regex=True)
        .str.strip()
    )
    header["type"] = types
    header["is_numeric"] = types.str.match(rf"^({NUMERIC_TYPES}){_BOUNDARY}")
    header["is_string"] = types.str.match(rf"^({STRING_TYPES}){_BOUNDARY}")
    header["is_blob"] = types.str.match(rf"^({BLOB_TYPES}){_BOUNDARY}")
    return header


def _column_from_row(row: Dict[str, Any]) -> ColumnDescriptor:
    default = row["default"]
    if isinstance(default, float) and pd.isna(default):
        default = None
    return ColumnDescriptor(
        name=row["name"],
        type=row["type"],
        is_key=bool(row["is_key"]),
        is_nullable=bool(row["is_nullable"]),
        is_numeric=bool(row["is_numeric"]),
        is_string=bool(row["is_string"]),
        is_blob=bool(row["is_blob"]),
        default=default,
        comment=row["comment"] or "",
        is_autoincrement=bool(row["is_autoincrement"]),
    )


def load_tables(catalog: Catalog, database: str, prefix: str = "") -> TableRegistry:
    """
    Carrega as tabelas de `database` (com `prefix`) em um `TableRegistry`.

    Raises:
        SchemaLoadError: Tabela não classificável ou coluna de tipo não suportado.
    """
    started = time.perf_counter()
    logger.info("loading table definitions from %s", database)

    tables = catalog.list_tables(database, table_pattern(prefix))
    registry = TableRegistry()
    if not tables:
        logger.info("no tables found in %s", database)
        return registry

    rows: List[Dict[str, Any]] = []
    for t in tables:
        rows.extend(catalog.list_columns(database, t["name"]))
    header = _classify_columns(pd.DataFrame(rows, columns=COLUMN_FIELDS))

    invalid = header[~(header["is_numeric"] | header["is_string"] | header["is_blob"])]
    if not invalid.empty:
        bad = invalid.iloc[0]
        raise SchemaLoadError(
            f'unsupported field type "{bad["type"]}" in {database}.{bad["table"]}.{bad["name"]}',
            details={"table": bad["table"], "column": bad["name"], "type": bad["type"]},
        )

    by_table = {name: group for name, group in header.groupby("table", sort=False)}
    for t in tables:
        name = t["name"]
        tier = classify_tier(name, prefix)
        if tier is None:
            raise SchemaLoadError(
                f"cannot classify table {database}.{name}",
                details={"table": name, "prefix": prefix},
            )
        group = by_table.get(name)
        columns = tuple(
            _column_from_row(r) for r in ([] if group is None else group.to_dict("records"))
        )
        registry.add(
            TableDescriptor(
                table_id=TableId(database, name),
                tier=tier,
                comment=(t.get("comment") or "").split("$", 1)[0].strip(),
                columns=columns,
            )
        )

    logger.info(
        "loaded %d tables (%d columns) from %s in %.3fs",
        len(registry),
        len(header),
        database,
        time.perf_counter() - started,
    )
    return registry
