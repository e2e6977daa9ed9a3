# src/tierflow/core/schema/catalog.py
"""
Consultas de catálogo do tierflow.

Este módulo implementa o contrato de catálogo exigido pelo loader de
metadados e pelo construtor do grafo:

    (a) listagem de tabelas filtrada por expressão regular
    (b) listagem de colunas com chave/tipo/nulabilidade/default/comentário
    (c) listagem de chaves estrangeiras com schema/tabela dos dois lados
        e o indicador "hierárquica" (colunas de referência contidas na
        chave primária da tabela que referencia)

As consultas usam o `Inspector` do SQLAlchemy sobre a conexão viva, o que
mantém o contrato portável entre MySQL, PostgreSQL e SQLite.

Limites explícitos:
    - Não classifica tiers nem tipos (ver schema.loader)
    - Não constrói o grafo (ver schema.graph)
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

import sqlalchemy as sa

from tierflow.core.connection.connection import Connection

logger = logging.getLogger(__name__)

SYSTEM_SCHEMAS = frozenset(
    {"information_schema", "mysql", "performance_schema", "sys", "pg_catalog", "pg_toast"}
)


class Catalog:
    """Fachada de catálogo sobre uma `Connection`."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self._inspector: Optional[sa.engine.reflection.Inspector] = None

    @property
    def inspector(self) -> sa.engine.reflection.Inspector:
        # um inspector por carga: o cache de reflexão vive apenas durante o reload
        if self._inspector is None:
            self._inspector = sa.inspect(self.connection._ensure_connected())
        return self._inspector

    def _table_comment(self, table: str, database: str) -> str:
        try:
            comment = self.inspector.get_table_comment(table, schema=database).get("text")
        except NotImplementedError:
            # dialeto sem suporte a comentários de tabela (ex.: SQLite)
            return ""
        return comment or ""

    def list_tables(self, database: str, pattern: str) -> List[Dict[str, Any]]:
        """Tabelas de `database` cujo nome casa com `pattern`."""
        regex = re.compile(pattern)
        names = sorted(self.inspector.get_table_names(schema=database))
        return [
            {"name": name, "comment": self._table_comment(name, database)}
            for name in names
            if regex.search(name)
        ]

    def list_columns(self, database: str, table: str) -> List[Dict[str, Any]]:
        """Colunas de `table` em ordem ordinal."""
        pk = set(self.inspector.get_pk_constraint(table, schema=database).get("constrained_columns") or [])
        columns = []
        for col in self.inspector.get_columns(table, schema=database):
            columns.append(
                {
                    "table": table,
                    "name": col["name"],
                    "type": str(col["type"]),
                    "is_key": col["name"] in pk,
                    "is_nullable": bool(col.get("nullable", True)),
                    "default": col.get("default"),
                    "comment": col.get("comment") or "",
                    "is_autoincrement": col.get("autoincrement") is True,
                }
            )
        return columns

    def _schemas_to_scan(self, database: str) -> List[str]:
        names = [s for s in self.inspector.get_schema_names() if s not in SYSTEM_SCHEMAS]
        if database not in names:
            names.insert(0, database)
        return names

    def _foreign_keys_of(self, schema: str) -> Iterable[Tuple[str, str, str, bool]]:
        for table in self.inspector.get_table_names(schema=schema):
            pk = set(self.inspector.get_pk_constraint(table, schema=schema).get("constrained_columns") or [])
            for fk in self.inspector.get_foreign_keys(table, schema=schema):
                referred_table = fk.get("referred_table")
                if not referred_table:
                    continue
                to_schema = fk.get("referred_schema") or schema
                hierarchical = all(c in pk for c in fk.get("constrained_columns") or [])
                yield table, to_schema, referred_table, hierarchical

    def list_foreign_keys(self, database: str) -> List[Dict[str, Any]]:
        """
        Chaves estrangeiras que tocam `database` em qualquer dos lados,
        agrupadas por par (tabela que referencia, tabela referenciada).
        """
        grouped: Dict[Tuple[str, str, str, str], bool] = {}
        for schema in self._schemas_to_scan(database):
            for from_table, to_schema, to_table, hierarchical in self._foreign_keys_of(schema):
                if database not in (schema, to_schema):
                    continue
                pair = (schema, from_table, to_schema, to_table)
                # uma única referência não-primária torna o par associativo
                grouped[pair] = grouped.get(pair, True) and hierarchical

        return [
            {
                "from_schema": from_schema,
                "from_table": from_table,
                "to_schema": to_schema,
                "to_table": to_table,
                "hierarchical": hierarchical,
            }
            for (from_schema, from_table, to_schema, to_table), hierarchical in grouped.items()
        ]
