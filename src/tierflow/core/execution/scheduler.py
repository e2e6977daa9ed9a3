# src/tierflow/core/execution/scheduler.py
"""
Contrato do scheduler de cluster usado pelas estratégias distribuídas.

O serviço de submissão de jobs é um colaborador externo; o tierflow
depende apenas desta interface:

    ClusterScheduler.create_job(user_data) → ClusterJob
    ClusterScheduler.register_flag(flag)
    ClusterJob.create_task(fn, args)
    ClusterJob.submit() / ClusterJob.discard()
    ClusterJob.task_count

Um job pode declarar recursos exigidos (`complex_resources`), entre eles
flags de gating: o scheduler só inicia o job depois que a flag foi
registrada (ex.: o cache de disco correspondente foi preparado).

`InProcessScheduler` é a implementação concreta usada em testes e em
execuções locais: roda as tarefas em sequência no `submit` e recusa jobs
cujas flags nunca foram registradas.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple, runtime_checkable

logger = logging.getLogger(__name__)

Resource = Tuple[str, int]


@runtime_checkable
class ClusterJob(Protocol):
    complex_resources: List[Resource]

    @property
    def task_count(self) -> int:
        ...

    def create_task(self, fn: Callable[..., Any], args: Sequence[Any] = ()) -> None:
        ...

    def submit(self) -> None:
        ...

    def discard(self) -> None:
        ...


@runtime_checkable
class ClusterScheduler(Protocol):
    def create_job(self, user_data: Optional[Dict[str, Any]] = None) -> ClusterJob:
        ...

    def register_flag(self, flag: str) -> None:
        ...


class SchedulerError(RuntimeError):
    """Uso inválido do scheduler (job já submetido, flag desconhecida)."""


@dataclass
class InProcessJob:
    """Job do `InProcessScheduler`: lista de tarefas executadas no submit."""

    scheduler: "InProcessScheduler"
    user_data: Dict[str, Any] = field(default_factory=dict)
    complex_resources: List[Resource] = field(default_factory=list)
    tasks: List[Tuple[Callable[..., Any], Tuple[Any, ...]]] = field(default_factory=list)
    state: str = "pending"
    failures: List[BaseException] = field(default_factory=list)

    @property
    def task_count(self) -> int:
        return len(self.tasks)

    def create_task(self, fn: Callable[..., Any], args: Sequence[Any] = ()) -> None:
        if self.state != "pending":
            raise SchedulerError(f"cannot add tasks to a {self.state} job")
        self.tasks.append((fn, tuple(args)))

    def submit(self) -> None:
        if self.state != "pending":
            raise SchedulerError(f"cannot submit a {self.state} job")
        missing = [name for name, _ in self.complex_resources if self.scheduler.is_flag(name) and name not in self.scheduler.flags]
        if missing:
            raise SchedulerError(f"job is gated by unregistered flags {missing}")
        self.state = "submitted"
        self.scheduler.submitted.append(self)
        for fn, args in self.tasks:
            try:
                fn(*args)
            except Exception as e:
                # a falha de uma tarefa não interrompe as demais
                logger.error("task %r failed: %s", fn, e)
                self.failures.append(e)
        self.state = "done"

    def discard(self) -> None:
        if self.state != "pending":
            raise SchedulerError(f"cannot discard a {self.state} job")
        self.state = "discarded"
        self.scheduler.discarded.append(self)


class InProcessScheduler:
    """Scheduler concreto que executa as tarefas no próprio processo."""

    FLAG_PREFIXES: Tuple[str, ...] = ("cache_",)

    def __init__(self) -> None:
        self.flags: Set[str] = set()
        self.jobs: List[InProcessJob] = []
        self.submitted: List[InProcessJob] = []
        self.discarded: List[InProcessJob] = []

    def is_flag(self, resource: str) -> bool:
        return resource.startswith(self.FLAG_PREFIXES)

    def register_flag(self, flag: str) -> None:
        if flag not in self.flags:
            logger.debug("registered flag %s", flag)
        self.flags.add(flag)

    def create_job(self, user_data: Optional[Dict[str, Any]] = None) -> InProcessJob:
        job = InProcessJob(scheduler=self, user_data=dict(user_data or {}))
        self.jobs.append(job)
        return job
