# src/tierflow/core/relation/cascade.py
"""
Delete em cascata com integridade referencial.

Fluxo de `cascade_delete`:
    1. Cancela qualquer transação em andamento
    2. Relvar vazio → "nothing to delete", retorna (0, True) sem perguntar
    3. Subtabela (imported/computed que não é alvo de população) → pergunta
    4. Busca em largura pelos dependentes, com conjunto de visitados:
         - pai marcado "restrict by me" → filho restrito pelo relvar pai (semijoin)
         - caso contrário → filho recebe as restrições literais do pai
       A raiz é marcada quando possui restrições; cada filho é marcado
       quando sua aresta até o pai é associativa.
    5. Resumo por tabela (`DeleteSummary`) → política de confirmação
    6. Uma única transação, em ordem reversa de dependência: cada tabela só
       é apagada depois dos seus dependentes coletados (empates em ordem
       reversa de descoberta). Qualquer falha cancela a transação e
       re-levanta o erro

Políticas de confirmação são explícitas (sem estado global):
    - interactive_confirm → lê "yes" do stdin
    - always_confirm      → execução não assistida
    - never_confirm       → sempre recusa
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, NamedTuple, Optional, Set, Tuple

from tierflow.core.config.loader import get_setting
from tierflow.core.schema.types import EdgeKind, TableId

if TYPE_CHECKING:  # pragma: no cover
    from .relvar import Relvar

logger = logging.getLogger(__name__)

ConfirmPolicy = Callable[[str, Optional["DeleteSummary"]], bool]


class DeleteResult(NamedTuple):
    count: int
    success: bool


@dataclass(frozen=True)
class SummaryEntry:
    table: str
    tier: str
    count: int


@dataclass
class DeleteSummary:
    """Contagem de tuplas por tabela, na ordem de descoberta."""

    entries: List[SummaryEntry] = field(default_factory=list)

    def add(self, table: str, tier: str, count: int) -> None:
        self.entries.append(SummaryEntry(table=table, tier=tier, count=count))

    @property
    def total(self) -> int:
        return sum(e.count for e in self.entries)

    def as_dict(self) -> Dict[str, int]:
        return {e.table: e.count for e in self.entries}

    def render(self) -> str:
        lines = ["ABOUT TO DELETE:"]
        lines.extend(f"{e.count:4d} tuples from {e.table} ({e.tier})" for e in self.entries)
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.render()


# ---------------------------------------------------------------------------
# Políticas de confirmação
# ---------------------------------------------------------------------------

def interactive_confirm(question: str, summary: Optional[DeleteSummary] = None) -> bool:
    if summary is not None:
        print(summary.render())
    return input(f"{question} yes/no > ").strip().lower() == "yes"


def always_confirm(question: str, summary: Optional[DeleteSummary] = None) -> bool:
    return True


def never_confirm(question: str, summary: Optional[DeleteSummary] = None) -> bool:
    return False


def confirm_policy(config: Optional[Dict[str, Any]]) -> ConfirmPolicy:
    """Interativa com `safemode` ligado (default); não assistida caso contrário."""
    if get_setting(config, "safemode", True):
        return interactive_confirm
    return always_confirm


# ---------------------------------------------------------------------------
# Cascata
# ---------------------------------------------------------------------------

def _resolve(root: "Relvar", table_id: TableId) -> Optional["Relvar"]:
    found = root.connection.find_table(table_id)
    if found is None:
        return None
    schema, descriptor = found
    return schema.relvar(descriptor.table_id)


def collect_cascade(relvar: "Relvar") -> Tuple[List["Relvar"], DeleteSummary]:
    """Relvars a apagar (ordem de descoberta) e o resumo de contagens."""
    summary = DeleteSummary()
    summary.add(relvar.full_name, relvar.tier.value, relvar.count())

    rels: List["Relvar"] = [relvar]
    visited: Set[TableId] = {relvar.table_id}
    queue: Deque[Tuple["Relvar", bool]] = deque([(relvar, bool(relvar.restrictions))])

    while queue:
        current, restrict_by_me = queue.popleft()
        graph = current.schema.dependencies
        children = graph.children(current.table_id)
        for child_id in sorted(children, key=str):
            if child_id in visited:
                continue
            visited.add(child_id)
            child = _resolve(relvar, child_id)
            if child is None:
                logger.warning("Ignoring %s because its schema is not loaded.", child_id)
                continue
            if restrict_by_me:
                child = child & current
            else:
                child = child.restrict(*current.restrictions)
            n = child.count()
            if n:
                summary.add(child.full_name, child.tier.value, n)
                rels.append(child)
                queue.append((child, children[child_id] != EdgeKind.HIERARCHICAL))

    return rels, summary


def deletion_order(rels: List["Relvar"]) -> List["Relvar"]:
    """
    Ordena os relvars coletados para o delete: dependentes antes dos pais.

    A ordem de descoberta não basta: numa hierarquia em diamante um
    dependente pode ser alcançado cedo por um pai e tarde por outro.
    """
    pending = list(reversed(rels))
    ordered: List["Relvar"] = []
    while pending:
        remaining = {r.table_id for r in pending}
        chosen = 0
        for i, rel in enumerate(pending):
            children = rel.schema.dependencies.children(rel.table_id)
            if not any(c in remaining and c != rel.table_id for c in children):
                chosen = i
                break
        ordered.append(pending.pop(chosen))
    return ordered


def cascade_delete(relvar: "Relvar", confirm: ConfirmPolicy) -> DeleteResult:
    """Remove as tuplas de `relvar` e todas as tuplas dependentes."""
    connection = relvar.connection
    connection.cancel_transaction()

    if not relvar.exists():
        logger.info("nothing to delete")
        return DeleteResult(0, True)

    if relvar.is_subtable:
        question = (
            f"!!! {relvar.class_name} is a subtable. For referential integrity, "
            "delete from its parent instead.\nProceed anyway?"
        )
        if not confirm(question, None):
            logger.info("delete cancelled")
            return DeleteResult(0, False)

    rels, summary = collect_cascade(relvar)
    logger.info("%s", summary.render())

    if not confirm("Proceed to delete?", summary):
        logger.info("delete cancelled")
        return DeleteResult(0, False)

    deleted = 0
    connection.start_transaction()
    try:
        for rel in deletion_order(rels):
            logger.debug("deleting from %s", rel.class_name)
            deleted += connection.execute(rel.delete_statement())
        connection.commit_transaction()
    except BaseException:
        logger.error("delete rolled back due to error")
        connection.cancel_transaction()
        raise

    logger.info("delete committed (%d tuples)", deleted)
    return DeleteResult(deleted, True)
