# src/tierflow/core/populate/__init__.py
"""
Auto-população do tierflow.

Uma tabela derivada é populada chave a chave: o engine calcula as
chaves faltantes, reserva cada uma na tabela de jobs (opcional) e a
entrega a uma estratégia de execução.

Componentes principais:
    - types    → JobStatus, KeyStatus, KeyOutcome, PopulateResult
    - context  → PopulateContext (eventos estruturados por chave)
    - jobs     → JobTable (`~jobs`), o mutex distribuído
    - strategy → contrato de estratégia, LocalStrategy, PopulateTask
    - engine   → AutoPopulate

Invariantes:
    - Uma chave presente no alvo nunca é recomputada
    - Falhas por chave não interrompem a execução (salvo configuração)
"""

from .context import PopulateContext
from .engine import AutoPopulate
from .jobs import JobTable
from .strategy import BaseStrategy, ExecutionStrategy, LocalStrategy, PopulateTask
from .types import JobStatus, KeyOutcome, KeyStatus, PopulateResult

__all__ = [
    "AutoPopulate",
    "BaseStrategy",
    "ExecutionStrategy",
    "JobStatus",
    "JobTable",
    "KeyOutcome",
    "KeyStatus",
    "LocalStrategy",
    "PopulateContext",
    "PopulateResult",
    "PopulateTask",
]
