# src/tierflow/core/populate/context.py
"""
Contexto de execução de uma chamada de `populate`.

O `PopulateContext` acompanha uma execução do engine de população e
registra eventos estruturados por chave, em paralelo ao logging stdlib:

    {run_id, target, key_hash, level, status, message, timestamp, ...}

Responsabilidades do módulo:
    - Manter identidade e configuração da execução
    - Registrar eventos estruturados por chave

Invariantes:
    - Eventos sempre incluem `run_id` e `target`
    - A ordem dos eventos reflete a ordem de processamento das chaves

Limites explícitos:
    - Não executa computações
    - Não persiste eventos automaticamente
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def new_run_id() -> str:
    return uuid.uuid4().hex


@dataclass
class PopulateContext:
    """
    Contexto de uma execução de população.

    Campos:
    - run_id: identificador único da execução
    - target: nome de classe da tabela alvo
    - config: configuração efetiva
    - created_at: timestamp UTC de criação
    - events: log estruturado de eventos por chave
    """

    run_id: str
    target: str
    config: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    events: List[Dict[str, Any]] = field(default_factory=list, init=False)

    @classmethod
    def start(cls, target: str, config: Optional[Dict[str, Any]] = None) -> "PopulateContext":
        return cls(run_id=new_run_id(), target=target, config=dict(config or {}))

    def log(self, *, key_hash: Optional[str], level: str, status: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "target": self.target,
            "key_hash": key_hash,
            "level": level,
            "status": status,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)

    def events_for(self, status: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["status"] == status]
