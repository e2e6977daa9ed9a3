# src/tierflow/core/schema/types.py
"""
Tipos canônicos do schema do tierflow.

Este módulo define as estruturas que padronizam a descrição das tabelas
carregadas do catálogo e das arestas do grafo de dependências.

Componentes principais:
    - Tier           → enum de papéis da tabela no pipeline
    - EdgeKind       → enum de tipos de referência (hierárquica / associativa)
    - TableId        → identidade explícita e estável de uma tabela
    - ColumnDescriptor / TableDescriptor → snapshot imutável do catálogo

Invariantes:
    - Descritores são imutáveis (frozen)
    - Enums possuem valores textuais/numéricos canônicos
    - Exatamente uma categoria (numérica/string/blob) por coluna

Limites explícitos:
    - Não consulta o banco
    - Não calcula níveis ou cascatas
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, List, NamedTuple, Optional, Tuple

from .naming import to_camel_case


class Tier(str, Enum):
    """
    Papel de uma tabela no pipeline, derivado exclusivamente do prefixo do nome.

    Prefixos (bit-exatos):
        - '#'  → LOOKUP
        - ''   → MANUAL
        - '_'  → IMPORTED
        - '__' → COMPUTED
        - '~'  → JOB

    EXTERNAL marca tabelas de outros schemas conhecidas apenas via arestas.
    """

    LOOKUP = "lookup"
    MANUAL = "manual"
    IMPORTED = "imported"
    COMPUTED = "computed"
    JOB = "job"
    EXTERNAL = "external"


# ordem de avaliação dos prefixos na classificação
TIER_PREFIXES: Tuple[Tuple[Tier, str], ...] = (
    (Tier.LOOKUP, "#"),
    (Tier.MANUAL, ""),
    (Tier.IMPORTED, "_"),
    (Tier.COMPUTED, "__"),
    (Tier.JOB, "~"),
)

AUTO_TIERS = frozenset({Tier.IMPORTED, Tier.COMPUTED})


class EdgeKind(IntEnum):
    """Tipo de uma referência de chave estrangeira (peso da aresta)."""

    HIERARCHICAL = 1
    ASSOCIATIVE = 2


class TableId(NamedTuple):
    """Identidade de uma tabela: banco + nome completo (com prefixo, se houver)."""

    database: str
    name: str

    @property
    def full_name(self) -> str:
        return f"`{self.database}`.`{self.name}`"

    @property
    def class_name(self) -> str:
        """Nome de classe `database.CamelCase` (prefixo dobrado em `database/prefix`)."""
        database, table = self.database, self.name
        if "/" in table:
            prefix, table = table.split("/", 1)
            database = f"{database}/{prefix}"
        return f"{database}.{to_camel_case(table)}"

    def __str__(self) -> str:
        return f"{self.database}.{self.name}"


@dataclass(frozen=True)
class ColumnDescriptor:
    """Descrição de uma coluna tal como carregada do catálogo."""

    name: str
    type: str
    is_key: bool
    is_nullable: bool
    is_numeric: bool
    is_string: bool
    is_blob: bool
    default: Optional[Any] = None
    comment: str = ""
    alias: str = ""
    is_autoincrement: bool = False

    def __post_init__(self) -> None:
        if int(self.is_numeric) + int(self.is_string) + int(self.is_blob) != 1:
            raise ValueError(
                f"column {self.name!r} must be exactly one of numeric/string/blob ({self.type})"
            )

    @property
    def is_decimal(self) -> bool:
        return self.type.startswith(("decimal", "numeric"))

    @property
    def is_bigint(self) -> bool:
        return self.type in ("bigint", "bigint unsigned")

    @property
    def is_integer(self) -> bool:
        return self.is_numeric and ("int" in self.type or self.type.startswith("bool"))


@dataclass(frozen=True)
class TableDescriptor:
    """Snapshot de uma tabela do schema: identidade, tier, comentário e colunas."""

    table_id: TableId
    tier: Tier
    comment: str = ""
    columns: Tuple[ColumnDescriptor, ...] = field(default_factory=tuple)

    @property
    def name(self) -> str:
        return self.table_id.name

    @property
    def class_name(self) -> str:
        return self.table_id.class_name

    @property
    def heading(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def primary_key(self) -> List[str]:
        return [c.name for c in self.columns if c.is_key]

    def column(self, name: str) -> ColumnDescriptor:
        for c in self.columns:
            if c.name == name:
                return c
        raise KeyError(name)
