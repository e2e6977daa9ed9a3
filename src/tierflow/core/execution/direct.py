# src/tierflow/core/execution/direct.py
"""Estratégia de submissão direta: um job de cluster por chave."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from tierflow.core.populate.strategy import BaseStrategy, MakeFn, PopulateTask

from .scheduler import ClusterScheduler

logger = logging.getLogger(__name__)


class DirectSubmitStrategy(BaseStrategy):
    """
    Cria e submete imediatamente um job com uma única tarefa por chave.

    Assíncrona: a contabilidade do job (liberação da reserva, gancho
    pós-execução) é feita pelo `PopulateTask` quando ele roda no cluster.
    """

    synchronous = False

    def __init__(self, scheduler: ClusterScheduler, user_data: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.scheduler = scheduler
        self.user_data = dict(user_data or {})

    def execute(self, key: Dict[str, Any], make: MakeFn, args: Sequence[Any] = ()) -> None:
        populator = self.populator
        job = self.scheduler.create_job(dict(self.user_data, target=populator.target.class_name))
        job.create_task(PopulateTask(populator, key, make, args, reserved=populator.reserving), ())
        job.submit()
        logger.debug("submitted %s for %s", populator.target.class_name, key)
