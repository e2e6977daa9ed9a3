# src/tierflow/core/populate/engine.py
"""
Engine de auto-população do tierflow.

Calcula as chaves faltantes de uma tabela derivada e as entrega, uma a
uma, à estratégia de execução:

    unpopulated = (source & restrições) - target

Fluxo de `populate`:
    1. Guardrails de configuração (PopulationConfigError antes de qualquer chave)
    2. Cancela transações herdadas
    3. Chaves = atributos da chave primária da fonte, ordenadas por eles
    4. Por chave: reserva opcional → estratégia → contabilidade do job
    5. Falhas por chave viram ErrorPayload (job + resultado) e a execução segue;
       com `suppress_errors=False` a primeira falha é re-levantada

Invariantes:
    - Uma chave já presente no alvo nunca é recomputada
    - Uma chave reservada por outro worker é pulada, não é erro
    - `finalize()` da estratégia roda mesmo quando a execução é interrompida
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from tierflow.core.config.hashing import compute_key_hash
from tierflow.core.config.loader import get_setting
from tierflow.core.errors import ErrorPayload, exception_to_error, job_error_message
from tierflow.core.exceptions import PopulationConfigError
from tierflow.core.relation.relation import Relation
from tierflow.core.relation.relvar import Relvar

from .context import PopulateContext
from .jobs import JobTable
from .strategy import BaseStrategy, ExecutionStrategy, LocalStrategy
from .types import KeyOutcome, KeyStatus, PopulateResult

logger = logging.getLogger(__name__)


class AutoPopulate:
    """
    Auto-população de uma tabela derivada (`imported` / `computed`).

    Args:
        target: Relvar da tabela a popular.
        source: Relação cujas chaves primárias definem o trabalho.
        make: Função `make(key, *args)` que insere as tuplas da chave.
        jobs: Tabela de jobs (obrigatória para reservas).
        strategy: Estratégia de execução (default: `LocalStrategy`).
        config: Configuração efetiva (default: a do schema do alvo).
    """

    def __init__(
        self,
        target: Relvar,
        source: Optional[Relation],
        make: Optional[Callable[..., Any]],
        *,
        jobs: Optional[JobTable] = None,
        strategy: Optional[ExecutionStrategy] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.target = target
        self.source = source
        self.make = make
        self.jobs = jobs
        self.config = config if config is not None else target.schema.config
        self.strategy: ExecutionStrategy = strategy if strategy is not None else LocalStrategy()
        self.strategy.bind(self)
        self.reserving = False
        self.last_context: Optional[PopulateContext] = None
        target.schema.mark_populated(target.table_id)

    def __repr__(self) -> str:
        return f"<AutoPopulate {self.target.class_name} via {self.strategy.__class__.__name__}>"

    @property
    def job_key(self) -> str:
        """Nome da tabela alvo nos registros de job."""
        return self.target.table_id.name

    # ------------------------------------------------------------------
    # Guardrails
    # ------------------------------------------------------------------

    def _check(self, reserve_jobs: bool) -> None:
        if self.source is None:
            raise PopulationConfigError(
                f"{self.target.class_name} has no population source",
                details={"target": self.target.class_name},
                hint="Pass the relation whose keys define the work as `source`",
            )
        if self.make is None:
            raise PopulationConfigError(
                f"{self.target.class_name} has no make function",
                details={"target": self.target.class_name},
            )
        if reserve_jobs and self.jobs is None:
            raise PopulationConfigError(
                "job reservation requires a job table",
                details={"target": self.target.class_name},
                hint="Pass jobs=schema.jobs",
            )
        if not isinstance(self.strategy, (BaseStrategy, ExecutionStrategy)):
            raise PopulationConfigError(
                "invalid execution strategy",
                details={"strategy": type(self.strategy).__name__},
            )

    # ------------------------------------------------------------------
    # Chaves
    # ------------------------------------------------------------------

    def unpopulated(self, *restrictions: Any) -> Relation:
        assert self.source is not None
        return self.source.restrict(*restrictions) - self.target.proj()

    def progress(self, *restrictions: Any) -> Tuple[int, int]:
        """(restantes, total) de chaves da fonte sob as restrições."""
        self._check(False)
        assert self.source is not None
        total = self.source.restrict(*restrictions).count()
        remaining = self.unpopulated(*restrictions).count()
        logger.info(
            "%s: completed %d of %d, remaining %d",
            self.target.class_name,
            total - remaining,
            total,
            remaining,
        )
        return remaining, total

    # ------------------------------------------------------------------
    # Contabilidade por chave
    # ------------------------------------------------------------------

    def record_success(self, key: Dict[str, Any], *, reserved: bool) -> None:
        if reserved and self.jobs is not None:
            keep = bool(get_setting(self.config, "populate.keep_completed_jobs", False))
            self.jobs.complete(self.job_key, key, keep=keep)

    def record_failure(self, key: Dict[str, Any], error: ErrorPayload) -> None:
        logger.error("%s: error populating %s: %s", self.target.class_name, key, error.message)
        if self.jobs is not None:
            self.jobs.error(self.job_key, key, job_error_message(error))

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------

    def populate(
        self,
        *restrictions: Any,
        reserve_jobs: Optional[bool] = None,
        suppress_errors: Optional[bool] = None,
        max_keys: Optional[int] = None,
        make_args: Sequence[Any] = (),
    ) -> PopulateResult:
        """
        Computa as chaves faltantes do alvo sob as restrições informadas.

        Args:
            *restrictions: Restrições aplicadas à fonte.
            reserve_jobs: Reserva cada chave na tabela de jobs antes de computar.
            suppress_errors: Continua após falhas (False re-levanta a primeira).
            max_keys: Limite de chaves processadas nesta execução.
            make_args: Argumentos extras repassados a `make`.

        Returns:
            PopulateResult: Desfecho por chave.

        Raises:
            PopulationConfigError: Configuração inválida (antes de qualquer chave).
        """
        if reserve_jobs is None:
            reserve_jobs = bool(get_setting(self.config, "populate.reserve_jobs", False))
        if suppress_errors is None:
            suppress_errors = bool(get_setting(self.config, "populate.suppress_errors", True))

        self._check(reserve_jobs)
        assert self.source is not None and self.make is not None

        connection = self.target.connection
        connection.cancel_transaction()

        ctx = PopulateContext.start(self.target.class_name, self.config)
        self.last_context = ctx
        self.reserving = reserve_jobs

        unpopulated = self.unpopulated(*restrictions)
        key_attrs = self.source.primary_key
        keys = unpopulated.fetch(*key_attrs, order_by=key_attrs, limit=max_keys)
        logger.info("%s: %d keys to populate", self.target.class_name, len(keys))

        outcomes: List[KeyOutcome] = []
        self.strategy.prepare(unpopulated)
        try:
            for key in keys:
                outcomes.append(self._populate_key(ctx, key, reserve_jobs, suppress_errors, make_args))
        finally:
            self.strategy.finalize()

        result = PopulateResult(run_id=ctx.run_id, target=self.target.class_name, outcomes=outcomes)
        logger.info(
            "%s: %d succeeded, %d submitted, %d skipped, %d failed",
            self.target.class_name,
            result.succeeded,
            result.submitted,
            result.skipped,
            result.failed,
        )
        return result

    def _populate_key(
        self,
        ctx: PopulateContext,
        key: Dict[str, Any],
        reserve_jobs: bool,
        suppress_errors: bool,
        make_args: Sequence[Any],
    ) -> KeyOutcome:
        key_hash = compute_key_hash(key)

        if reserve_jobs:
            assert self.jobs is not None
            if not self.jobs.reserve(self.job_key, key):
                ctx.log(key_hash=key_hash, level="info", status=KeyStatus.SKIPPED.value, message="reserved elsewhere")
                return KeyOutcome(key=key, key_hash=key_hash, status=KeyStatus.SKIPPED)
            if (self.target & key).exists():
                # populada por outro worker depois do snapshot de chaves
                self.jobs.complete(self.job_key, key)
                ctx.log(key_hash=key_hash, level="info", status=KeyStatus.SKIPPED.value, message="already populated")
                return KeyOutcome(key=key, key_hash=key_hash, status=KeyStatus.SKIPPED)

        logger.info("populating %s for %s", self.target.class_name, key)
        try:
            self.strategy.execute(key, self.make, make_args)
        except Exception as e:
            error = exception_to_error(e)
            self.record_failure(key, error)
            ctx.log(key_hash=key_hash, level="error", status=KeyStatus.FAILED.value, message=error.message, error=error.to_dict())
            if not suppress_errors:
                raise
            return KeyOutcome(key=key, key_hash=key_hash, status=KeyStatus.FAILED, error=error.to_dict())

        if not self.strategy.synchronous:
            ctx.log(key_hash=key_hash, level="info", status=KeyStatus.SUBMITTED.value, message="dispatched")
            return KeyOutcome(key=key, key_hash=key_hash, status=KeyStatus.SUBMITTED)

        self.record_success(key, reserved=reserve_jobs)
        self.strategy.post_execution(key)
        ctx.log(key_hash=key_hash, level="info", status=KeyStatus.SUCCESS.value, message="populated")
        return KeyOutcome(key=key, key_hash=key_hash, status=KeyStatus.SUCCESS)
