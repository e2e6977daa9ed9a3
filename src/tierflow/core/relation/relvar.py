# src/tierflow/core/relation/relvar.py
"""
Relvar: variável relacional ligada a uma tabela do schema.

Além da leitura herdada de `Relation`, o relvar concentra as mutações:

    - insert / insert1 / insert_ignore  → insert validado (tudo ou nada)
    - update                            → atualização de um atributo não-chave
    - delete                            → delete em cascata com confirmação
    - delete_quick                      → delete local, sem cascata nem confirmação

Invariantes:
    - Todas as tuplas são validadas antes da primeira escrita
    - Um insert de várias tuplas roda em uma única transação
      (a transação ativa é reaproveitada quando existir)
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from tierflow.core.exceptions import InsertValidationError, UnknownFieldError
from tierflow.core.schema.types import AUTO_TIERS, TableDescriptor, TableId, Tier

from .cascade import ConfirmPolicy, DeleteResult, cascade_delete, confirm_policy
from .encoding import OMIT, encode_tuple, encode_value
from .relation import TableRelation

if TYPE_CHECKING:  # pragma: no cover
    from tierflow.core.schema.schema import Schema

logger = logging.getLogger(__name__)

INSERT_MODES = ("insert", "ignore", "replace")

Rows = Union[Mapping[str, Any], Iterable[Mapping[str, Any]], pd.DataFrame]


def _as_rows(rows: Rows) -> List[Mapping[str, Any]]:
    if isinstance(rows, pd.DataFrame):
        return rows.to_dict("records")
    if isinstance(rows, Mapping):
        return [rows]
    return list(rows)


class Relvar(TableRelation):
    """Relação restringível sobre uma tabela carregada de um `Schema`."""

    def __init__(self, schema: "Schema", descriptor: TableDescriptor, restrictions: Tuple[Any, ...] = ()):
        super().__init__(
            schema.connection,
            descriptor.table_id.database,
            descriptor.name,
            descriptor.heading,
            descriptor.primary_key,
            restrictions,
        )
        self.schema = schema
        self.descriptor = descriptor

    @property
    def table_id(self) -> TableId:
        return self.descriptor.table_id

    @property
    def tier(self) -> Tier:
        return self.descriptor.tier

    @property
    def class_name(self) -> str:
        return self.descriptor.class_name

    @property
    def full_name(self) -> str:
        return self.table_id.full_name

    @property
    def is_subtable(self) -> bool:
        """Tabela imported/computed que não é alvo de nenhuma auto-população."""
        return self.tier in AUTO_TIERS and not self.schema.is_populated(self.table_id)

    def __repr__(self) -> str:
        return f"<Relvar {self.class_name} ({self.tier.value}) restrictions={len(self.restrictions)}>"

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def _insert_statement(self, mode: str) -> sa.sql.Insert:
        dialect = self.connection.dialect_name
        if mode == "ignore":
            if dialect == "sqlite":
                return sa.insert(self.table).prefix_with("OR IGNORE")
            if dialect in ("mysql", "mariadb"):
                return sa.insert(self.table).prefix_with("IGNORE")
            if dialect == "postgresql":
                return postgresql.insert(self.table).on_conflict_do_nothing()
            raise NotImplementedError(f"insert mode 'ignore' is not supported for {dialect}")
        if mode == "replace" and dialect == "sqlite":
            return sa.insert(self.table).prefix_with("OR REPLACE")
        return sa.insert(self.table)

    def _replace_by_delete(self, row: Mapping[str, Any]) -> None:
        key = {k: row[k] for k in self.primary_key if k in row}
        if len(key) == len(self.primary_key):
            table = self.table
            self.connection.execute(
                sa.delete(table).where(*(table.c[k] == v for k, v in key.items()))
            )

    def insert(self, rows: Rows, mode: str = "insert", precision_tolerance: float = math.inf) -> int:
        """
        Insere tuplas na tabela.

        Args:
            rows: Tupla (mapping), sequência de tuplas ou DataFrame.
            mode: "insert" (duplicata levanta DuplicateKeyError), "ignore"
                (duplicata é ignorada) ou "replace" (duplicata é sobrescrita).
            precision_tolerance: Tolerância de erro relativo para colunas decimais.

        Returns:
            int: Número de linhas afetadas.
        """
        if mode not in INSERT_MODES:
            raise ValueError(f"invalid insert mode {mode!r}")

        encoded = [encode_tuple(self.descriptor, row, precision_tolerance) for row in _as_rows(rows)]
        if not encoded:
            return 0

        connection = self.connection
        own_transaction = not connection.in_transaction
        replace_by_delete = mode == "replace" and connection.dialect_name != "sqlite"
        statement = self._insert_statement(mode)

        if own_transaction:
            connection.start_transaction()
        count = 0
        try:
            for row in encoded:
                if replace_by_delete:
                    self._replace_by_delete(row)
                count += max(connection.execute(statement.values(row)), 0)
        except BaseException:
            if own_transaction:
                connection.cancel_transaction()
            raise
        if own_transaction:
            connection.commit_transaction()

        logger.debug("%s %d tuples into %s", mode, count, self.class_name)
        return count

    def insert1(self, row: Mapping[str, Any], mode: str = "insert", precision_tolerance: float = math.inf) -> int:
        return self.insert([row], mode=mode, precision_tolerance=precision_tolerance)

    def insert_ignore(self, rows: Rows) -> int:
        return self.insert(rows, mode="ignore")

    def last_insert_id(self) -> Any:
        return self.connection.last_insert_id()

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, attribute: str, value: Any = None) -> int:
        """
        Atualiza um atributo não-chave de exatamente uma tupla.

        Sem `value` (ou NaN em coluna numérica) o atributo recebe NULL.
        """
        if attribute not in self.heading:
            raise UnknownFieldError(
                f"invalid attribute name {attribute}",
                details={"field": attribute, "table": self.class_name},
            )
        column = self.descriptor.column(attribute)
        if column.is_key:
            raise InsertValidationError(
                "cannot update a key value. Use insert(..., mode='replace') instead",
                details={"field": attribute},
            )
        n = self.count()
        if n != 1:
            raise InsertValidationError(
                "Update is only allowed on one tuple at a time",
                details={"table": self.class_name, "count": n},
            )

        encoded = encode_value(column, value)
        if encoded is OMIT or encoded is None:
            if not column.is_nullable:
                raise InsertValidationError(
                    f"attribute `{attribute}` is not nullable",
                    details={"field": attribute},
                )
            encoded = None

        table = self.table
        stmt = sa.update(table).where(*self.where_clause(table.c)).values({attribute: encoded})
        return self.connection.execute(stmt)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_statement(self) -> sa.sql.Delete:
        table = self.table
        return sa.delete(table).where(*self.where_clause(table.c))

    def delete_quick(self) -> int:
        """Apaga as tuplas restritas desta tabela, sem cascata nem confirmação."""
        return self.connection.execute(self.delete_statement())

    def delete(self, confirm: Optional[ConfirmPolicy] = None) -> DeleteResult:
        """Apaga as tuplas restritas e todas as dependentes (ver relation.cascade)."""
        if confirm is None:
            confirm = confirm_policy(self.schema.config)
        return cascade_delete(self, confirm)
