# src/tierflow/core/relation/relation.py
"""
Relações: valores imutáveis {origem, restrições} sobre a conexão.

Uma `Relation` descreve um conjunto de tuplas sem materializá-lo. As
operações suportadas são apenas as exigidas pelos motores de cascata e
de população:

    rel & cond     → restrição
    rel - other    → anti-restrição (tuplas sem correspondente em `other`)
    rel * other    → junção natural (atributos em comum)
    rel.proj(...)  → projeção (a chave primária é sempre mantida)

Tipos de restrição aceitos:
    - Mapping          → igualdade por atributo (atributos fora do heading são ignorados)
    - sequência        → OU dos membros (vazia → nenhuma tupla)
    - str              → predicado SQL
    - Relation         → semijoin pelos atributos em comum
    - Not(...)         → negação
    - bool             → tudo / nada

Todos os valores trafegam como parâmetros vinculados do SQLAlchemy.

Limites explícitos:
    - Não é uma álgebra relacional completa
    - Não planeja queries
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import sqlalchemy as sa

from tierflow.core.connection.connection import Connection


class Not:
    """Negação de uma restrição."""

    __slots__ = ("restriction",)

    def __init__(self, restriction: Any):
        self.restriction = restriction

    def __repr__(self) -> str:
        return f"Not({self.restriction!r})"


def _plain(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


def _order_clause(columns: sa.sql.ColumnCollection, spec: str) -> sa.sql.ColumnElement:
    parts = spec.split()
    column = columns[parts[0]]
    if len(parts) > 1 and parts[1].lower() == "desc":
        return column.desc()
    return column.asc()


class Relation:
    """Base das relações; subclasses definem `heading`, `primary_key` e `_source`."""

    def __init__(self, connection: Connection, restrictions: Tuple[Any, ...] = ()):
        self.connection = connection
        self._restrictions: Tuple[Any, ...] = tuple(restrictions)

    # ------------------------------------------------------------------
    # Contrato das subclasses
    # ------------------------------------------------------------------

    @property
    def heading(self) -> List[str]:
        raise NotImplementedError

    @property
    def primary_key(self) -> List[str]:
        raise NotImplementedError

    def _source(self) -> sa.sql.FromClause:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Restrições
    # ------------------------------------------------------------------

    @property
    def restrictions(self) -> Tuple[Any, ...]:
        return self._restrictions

    def _with(self, *restrictions: Any) -> "Relation":
        clone = copy.copy(self)
        clone._restrictions = self._restrictions + tuple(restrictions)
        return clone

    def restrict(self, *conditions: Any) -> "Relation":
        return self._with(*conditions)

    def __and__(self, condition: Any) -> "Relation":
        return self._with(condition)

    def __sub__(self, other: Any) -> "Relation":
        return self._with(Not(other))

    def __mul__(self, other: "Relation") -> "Relation":
        return Join(self, other)

    def proj(self, *attributes: str) -> "Relation":
        return Projection(self, attributes)

    def _condition(self, restriction: Any, columns: sa.sql.ColumnCollection) -> sa.sql.ColumnElement:
        if isinstance(restriction, Not):
            return sa.not_(self._condition(restriction.restriction, columns))
        if isinstance(restriction, (bool, np.bool_)):
            return sa.true() if restriction else sa.false()
        if isinstance(restriction, str):
            return sa.text(f"({restriction})")
        if isinstance(restriction, Relation):
            return self._semijoin(restriction, columns)
        if isinstance(restriction, pd.DataFrame):
            return self._condition(restriction.to_dict("records"), columns)
        if isinstance(restriction, Mapping):
            conditions = []
            for name, value in restriction.items():
                if name not in columns:
                    continue
                value = _plain(value)
                conditions.append(columns[name].is_(None) if value is None else columns[name] == value)
            return sa.and_(sa.true(), *conditions)
        if isinstance(restriction, Sequence):
            if not restriction:
                return sa.false()
            return sa.or_(*(self._condition(r, columns) for r in restriction))
        raise TypeError(f"invalid restriction type {type(restriction).__name__}")

    def _semijoin(self, other: "Relation", columns: sa.sql.ColumnCollection) -> sa.sql.ColumnElement:
        common = [a for a in other.heading if a in columns]
        inner = other.select(*common).subquery() if common else other.select().subquery()
        return sa.exists().where(*(inner.c[a] == columns[a] for a in common)).select_from(inner)

    def where_clause(self, columns: sa.sql.ColumnCollection) -> List[sa.sql.ColumnElement]:
        return [self._condition(r, columns) for r in self._restrictions]

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------

    def select(self, *attributes: str, order_by: Union[str, Sequence[str], None] = None) -> sa.sql.Select:
        source = self._source()
        columns = source.c
        names = list(attributes) or self.heading
        stmt = sa.select(*(columns[a] for a in names)).select_from(source).where(*self.where_clause(columns))
        if order_by:
            specs = [order_by] if isinstance(order_by, str) else list(order_by)
            stmt = stmt.order_by(*(_order_clause(columns, s) for s in specs))
        return stmt

    def fetch(
        self,
        *attributes: str,
        order_by: Union[str, Sequence[str], None] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = self.select(*attributes, order_by=order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.connection.query(stmt)

    def fetch1(self, *attributes: str) -> Dict[str, Any]:
        rows = self.fetch(*attributes, limit=2)
        if len(rows) != 1:
            raise ValueError(f"fetch1 expects exactly one tuple, found {'none' if not rows else 'several'}")
        return rows[0]

    def fetch_keys(self) -> List[Dict[str, Any]]:
        return self.fetch(*self.primary_key, order_by=self.primary_key)

    def fetch_frame(self, *attributes: str, order_by: Union[str, Sequence[str], None] = None) -> pd.DataFrame:
        rows = self.fetch(*attributes, order_by=order_by)
        return pd.DataFrame(rows, columns=list(attributes) or self.heading)

    def count(self) -> int:
        inner = self.select().subquery()
        return int(self.connection.query(sa.select(sa.func.count().label("n")).select_from(inner))[0]["n"])

    def __len__(self) -> int:
        return self.count()

    def exists(self) -> bool:
        return bool(self.fetch(*self.primary_key or self.heading[:1], limit=1))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} heading={self.heading} restrictions={len(self._restrictions)}>"


class TableRelation(Relation):
    """Relação sobre uma tabela física (`database.name`)."""

    def __init__(
        self,
        connection: Connection,
        database: str,
        name: str,
        heading: Sequence[str],
        primary_key: Sequence[str],
        restrictions: Tuple[Any, ...] = (),
    ):
        super().__init__(connection, restrictions)
        self._heading = list(heading)
        self._primary_key = list(primary_key)
        self.table = sa.table(name, *(sa.column(c) for c in self._heading), schema=database)

    @property
    def heading(self) -> List[str]:
        return list(self._heading)

    @property
    def primary_key(self) -> List[str]:
        return list(self._primary_key)

    def _source(self) -> sa.sql.FromClause:
        return self.table


class Join(Relation):
    """Junção natural de duas relações pelos atributos em comum."""

    def __init__(self, left: Relation, right: Relation, restrictions: Tuple[Any, ...] = ()):
        if left.connection is not right.connection:
            raise ValueError("cannot join relations from different connections")
        super().__init__(left.connection, restrictions)
        self.left = left
        self.right = right

    @property
    def heading(self) -> List[str]:
        left = self.left.heading
        return left + [a for a in self.right.heading if a not in left]

    @property
    def primary_key(self) -> List[str]:
        left = self.left.primary_key
        return left + [a for a in self.right.primary_key if a not in left]

    def _source(self) -> sa.sql.FromClause:
        lsub = self.left.select().subquery()
        rsub = self.right.select().subquery()
        left_heading = self.left.heading
        common = [a for a in self.right.heading if a in left_heading]
        onclause = sa.and_(sa.true(), *(lsub.c[a] == rsub.c[a] for a in common))
        extra = [rsub.c[a] for a in self.right.heading if a not in left_heading]
        return (
            sa.select(*(lsub.c[a] for a in left_heading), *extra)
            .select_from(lsub.join(rsub, onclause))
            .subquery()
        )


class Projection(Relation):
    """Projeção sobre um subconjunto de atributos (mais a chave primária)."""

    def __init__(self, source: Relation, attributes: Sequence[str], restrictions: Tuple[Any, ...] = ()):
        super().__init__(source.connection, restrictions)
        unknown = [a for a in attributes if a not in source.heading]
        if unknown:
            raise KeyError(f"unknown attributes {unknown}")
        self.source = source
        pk = source.primary_key
        self._heading = pk + [a for a in attributes if a not in pk]

    @property
    def heading(self) -> List[str]:
        return list(self._heading)

    @property
    def primary_key(self) -> List[str]:
        return self.source.primary_key

    def _source(self) -> sa.sql.FromClause:
        return self.source.select(*self._heading).subquery()
