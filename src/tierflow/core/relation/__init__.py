# src/tierflow/core/relation/__init__.py
"""
Relações e relvars do tierflow.

Componentes principais:
    - relation → `Relation`, `Join`, `Projection`, `Not`
    - encoding → validação e codificação de tuplas
    - relvar   → `Relvar` (insert / update / delete)
    - cascade  → delete em cascata, resumo e políticas de confirmação
"""

from .cascade import (
    DeleteResult,
    DeleteSummary,
    always_confirm,
    cascade_delete,
    confirm_policy,
    interactive_confirm,
    never_confirm,
)
from .relation import Join, Not, Projection, Relation, TableRelation
from .relvar import Relvar

__all__ = [
    "DeleteResult",
    "DeleteSummary",
    "Join",
    "Not",
    "Projection",
    "Relation",
    "Relvar",
    "TableRelation",
    "always_confirm",
    "cascade_delete",
    "confirm_policy",
    "interactive_confirm",
    "never_confirm",
]
