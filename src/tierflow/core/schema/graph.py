# src/tierflow/core/schema/graph.py
"""
Grafo de dependências entre tabelas (chaves estrangeiras).

Este módulo constrói o grafo dirigido `filho → pai` a partir das chaves
estrangeiras do catálogo e calcula o nível hierárquico de cada tabela.

Arestas:
    - HIERARCHICAL (1): todas as colunas de referência pertencem à chave
      primária da tabela que referencia
    - ASSOCIATIVE (2): qualquer outro caso

Cálculo de níveis:
    1. Camadas por remoção repetida de tabelas sem pais (Kahn);
       a primeira camada recebe nível 0
    2. Refinamento: toda tabela com filhos recebe
       `min(nível dos filhos) - 1`, repetido até estabilizar
       (no máximo uma iteração por tabela)

Invariantes:
    - Para toda aresta filho → pai: nível(pai) < nível(filho)
    - Tabelas sem pais e sem filhos ficam no nível 0
    - A mesma entrada produz sempre o mesmo grafo e os mesmos níveis

Falhas estruturais (ciclos, auto-referência, não convergência) são fatais
e abortam o reload com `SchemaLoadError`.

Limites explícitos:
    - Não consulta o banco (recebe as chaves já listadas)
    - Não executa deletes em cascata (ver relation.cascade)
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Set

from tierflow.core.exceptions import SchemaLoadError

from .registry import TableRegistry
from .types import EdgeKind, TableId

logger = logging.getLogger(__name__)


@dataclass
class DependencyGraph:
    """Adjacência map-of-maps indexada por `TableId`, com níveis calculados."""

    nodes: List[TableId] = field(default_factory=list)
    _parents: Dict[TableId, Dict[TableId, EdgeKind]] = field(default_factory=dict, repr=False)
    _children: Dict[TableId, Dict[TableId, EdgeKind]] = field(default_factory=dict, repr=False)
    _levels: Dict[TableId, int] = field(default_factory=dict, repr=False)

    def add_edge(self, child: TableId, parent: TableId, kind: EdgeKind) -> None:
        self._parents.setdefault(child, {})[parent] = kind
        self._children.setdefault(parent, {})[child] = kind

    def parents(self, table_id: TableId) -> Dict[TableId, EdgeKind]:
        return dict(self._parents.get(table_id, {}))

    def children(self, table_id: TableId) -> Dict[TableId, EdgeKind]:
        return dict(self._children.get(table_id, {}))

    def edge(self, child: TableId, parent: TableId) -> EdgeKind:
        try:
            return self._parents[child][parent]
        except KeyError:
            raise KeyError(f"no dependency {child} -> {parent}") from None

    def level(self, table_id: TableId) -> int:
        return self._levels[table_id]

    @property
    def levels(self) -> Dict[TableId, int]:
        return dict(self._levels)

    def descendants(self, table_id: TableId) -> List[TableId]:
        """Dependentes transitivos em ordem de busca em largura (sem a própria tabela)."""
        seen: Set[TableId] = {table_id}
        order: List[TableId] = []
        queue = deque([table_id])
        while queue:
            current = queue.popleft()
            for child in sorted(self._children.get(current, {}), key=str):
                if child not in seen:
                    seen.add(child)
                    order.append(child)
                    queue.append(child)
        return order

    def ordered(self) -> List[TableId]:
        """Tabelas ordenadas por nível; empates por nome."""
        return sorted(self.nodes, key=lambda t: (self._levels[t], str(t)))

    def compute_levels(self) -> Dict[TableId, int]:
        remaining: Set[TableId] = set(self.nodes)
        levels: Dict[TableId, int] = {}
        layer = 0
        while remaining:
            orphans = [t for t in remaining if not (set(self._parents.get(t, {})) & remaining)]
            if not orphans:
                raise SchemaLoadError(
                    "cycle detected in table dependencies",
                    details={"tables": sorted(str(t) for t in remaining)},
                )
            for t in orphans:
                levels[t] = layer
            remaining.difference_update(orphans)
            layer += 1

        # eleva cada pai até logo acima do filho mais raso
        for _ in range(len(self.nodes) + 1):
            changed = False
            for t in self.nodes:
                children = self._children.get(t)
                if children:
                    refined = min(levels[c] for c in children) - 1
                    if refined != levels[t]:
                        levels[t] = refined
                        changed = True
            if not changed:
                break
        else:
            raise SchemaLoadError(
                "table levels did not converge",
                details={"tables": len(self.nodes)},
            )

        self._levels = levels
        return dict(levels)


def build_graph(
    foreign_keys: Iterable[Mapping[str, Any]],
    registry: TableRegistry,
    database: str,
    pattern: str,
) -> DependencyGraph:
    """
    Constrói o grafo de dependências de um schema e calcula os níveis.

    Mantém apenas chaves que tocam `database` em uma tabela que casa com
    `pattern`; tabelas de outros schemas são registradas como externas.

    Raises:
        SchemaLoadError: Auto-referência, ciclo ou não convergência dos níveis.
    """
    regex = re.compile(pattern)
    graph = DependencyGraph()

    for fk in foreign_keys:
        to_local = fk["to_schema"] == database and regex.search(fk["to_table"])
        from_local = fk["from_schema"] == database and regex.search(fk["from_table"])
        if not (to_local or from_local):
            continue

        child = TableId(fk["from_schema"], fk["from_table"])
        parent = TableId(fk["to_schema"], fk["to_table"])
        if child == parent:
            raise SchemaLoadError(
                f"table {child} references itself",
                details={"table": str(child)},
            )
        for t in (child, parent):
            if registry.add_external(t):
                logger.debug("registered external table %s", t)

        kind = EdgeKind.HIERARCHICAL if fk["hierarchical"] else EdgeKind.ASSOCIATIVE
        graph.add_edge(child, parent, kind)

    graph.nodes = registry.ids()
    graph.compute_levels()
    return graph
