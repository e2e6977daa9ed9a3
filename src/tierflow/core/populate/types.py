# src/tierflow/core/populate/types.py
"""
Tipos canônicos da auto-população.

Componentes principais:
    - JobStatus     → estados de um registro da tabela de jobs
    - KeyStatus     → desfecho de uma chave em uma execução de `populate`
    - KeyOutcome    → resultado imutável por chave
    - PopulateResult → resultado agregado de uma execução

Invariantes:
    - Enums possuem valores textuais canônicos (persistidos na tabela de jobs)
    - Resultados são imutáveis e serializáveis

Limites explícitos:
    - Não executa computações
    - Não acessa o banco
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(str, Enum):
    """Estado de uma reserva na tabela `~jobs`."""

    RESERVED = "reserved"
    ERROR = "error"
    DONE = "done"


class KeyStatus(str, Enum):
    """
    Desfecho de uma chave dentro de uma execução.

        - SUCCESS: computada e confirmada localmente
        - SUBMITTED: entregue a um scheduler externo (assíncrono)
        - SKIPPED: reservada por outro worker
        - FAILED: a computação levantou erro (registrado no job)
    """

    SUCCESS = "success"
    SUBMITTED = "submitted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class KeyOutcome:
    key: Dict[str, Any]
    key_hash: str
    status: KeyStatus
    error: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PopulateResult:
    """Resultado agregado de uma execução de `AutoPopulate.populate`."""

    run_id: str
    target: str
    outcomes: List[KeyOutcome] = field(default_factory=list)

    def _count(self, status: KeyStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(KeyStatus.SUCCESS)

    @property
    def submitted(self) -> int:
        return self._count(KeyStatus.SUBMITTED)

    @property
    def skipped(self) -> int:
        return self._count(KeyStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(KeyStatus.FAILED)

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return [o.error for o in self.outcomes if o.error is not None]

    def __len__(self) -> int:
        return len(self.outcomes)
