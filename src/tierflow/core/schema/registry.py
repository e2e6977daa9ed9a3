# src/tierflow/core/schema/registry.py
"""
Registro explícito de tabelas de um schema.

Este módulo define o `TableRegistry`, o mapeamento construído uma única
vez por carga de schema entre a identidade estável de uma tabela
(`TableId`) e seu descritor (`TableDescriptor`).

O registry atua como uma camada de proteção antecipada, garantindo que:
    - cada tabela possua identidade única
    - a ordem de carga do catálogo seja preservada explicitamente
    - tabelas externas (conhecidas apenas via chaves estrangeiras) sejam
      distinguidas das tabelas do próprio schema

Invariantes:
    - Cada `TableId` aparece no máximo uma vez
    - A lista de tabelas reflete exatamente a ordem de registro
    - Tabelas externas não possuem descritor

Limites explícitos:
    - Não consulta o catálogo
    - Não calcula dependências
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from tierflow.core.exceptions import SchemaLoadError, UnknownTableError

from .types import TableDescriptor, TableId, Tier


@dataclass
class TableRegistry:
    """
    Registro canônico de tabelas carregadas (e externas referenciadas).

    Construído pelo loader de metadados e estendido pelo construtor do
    grafo de dependências; depois disso é tratado como snapshot somente
    leitura até o próximo reload.
    """

    _tables: Dict[TableId, TableDescriptor] = field(default_factory=dict, init=False, repr=False)
    _external: Dict[TableId, None] = field(default_factory=dict, init=False, repr=False)
    _order: List[TableId] = field(default_factory=list, init=False, repr=False)

    def add(self, descriptor: TableDescriptor) -> None:
        table_id = descriptor.table_id
        if table_id in self._tables or table_id in self._external:
            raise SchemaLoadError(
                f"Duplicate table: {table_id}",
                details={"table": str(table_id)},
            )
        self._tables[table_id] = descriptor
        self._order.append(table_id)

    def add_external(self, table_id: TableId) -> bool:
        """Registra uma tabela de outro schema; retorna False se já conhecida."""
        if table_id in self._tables or table_id in self._external:
            return False
        self._external[table_id] = None
        self._order.append(table_id)
        return True

    def get(self, table_id: TableId) -> TableDescriptor:
        try:
            return self._tables[table_id]
        except KeyError:
            raise UnknownTableError(
                f"Table {table_id} is not declared in this schema",
                details={"table": str(table_id)},
            ) from None

    def find(self, table_id: TableId) -> Optional[TableDescriptor]:
        return self._tables.get(table_id)

    def by_class_name(self, class_name: str) -> TableDescriptor:
        for descriptor in self._tables.values():
            if descriptor.class_name == class_name:
                return descriptor
        raise UnknownTableError(
            f"Unknown table class {class_name}",
            details={"class_name": class_name},
        )

    def tier(self, table_id: TableId) -> Tier:
        if table_id in self._tables:
            return self._tables[table_id].tier
        if table_id in self._external:
            return Tier.EXTERNAL
        raise UnknownTableError(f"Unknown table {table_id}", details={"table": str(table_id)})

    def is_external(self, table_id: TableId) -> bool:
        return table_id in self._external

    def ids(self) -> List[TableId]:
        """Todas as identidades (próprias e externas) na ordem de registro."""
        return list(self._order)

    def list(self) -> List[TableDescriptor]:
        return [self._tables[t] for t in self._order if t in self._tables]

    def __contains__(self, table_id: object) -> bool:
        return table_id in self._tables or table_id in self._external

    def __iter__(self) -> Iterator[TableDescriptor]:
        return iter(self.list())

    def __len__(self) -> int:
        return len(self._tables)
