# src/tierflow/core/populate/strategy.py
"""
Contrato canônico de estratégia de execução da auto-população.

Uma estratégia decide COMO cada chave faltante é computada; o engine
decide QUAIS chaves faltam e cuida das reservas.

Ciclo de vida por execução de `populate`:

    bind(populator)            (uma vez, na construção do AutoPopulate)
    prepare(unpopulated)       antes do laço de chaves
    execute(key, make, args)   para cada chave reservada
    post_execution(key)        após cada computação bem sucedida
    finalize()                 depois do laço (inclusive após erro)

Estratégias síncronas computam dentro de `execute`; o engine faz a
contabilidade da chave. Estratégias assíncronas apenas despacham um
`PopulateTask`, que faz a própria contabilidade quando roda.

Limites explícitos:
    - Não decide quais chaves faltam
    - Não reserva chaves
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Protocol, Sequence, runtime_checkable

from tierflow.core.errors import exception_to_error
from tierflow.core.relation.relation import Relation

if TYPE_CHECKING:  # pragma: no cover
    from .engine import AutoPopulate

logger = logging.getLogger(__name__)

MakeFn = Callable[..., Any]


@runtime_checkable
class ExecutionStrategy(Protocol):
    """Contrato mínimo de uma estratégia de execução."""

    synchronous: bool

    def bind(self, populator: "AutoPopulate") -> None:
        ...

    def prepare(self, unpopulated: Relation) -> None:
        ...

    def execute(self, key: Dict[str, Any], make: MakeFn, args: Sequence[Any] = ()) -> None:
        ...

    def post_execution(self, key: Dict[str, Any]) -> None:
        ...

    def finalize(self) -> None:
        ...


class BaseStrategy:
    """Implementação neutra dos ganchos; subclasses sobrescrevem `execute`."""

    synchronous = True

    def __init__(self) -> None:
        self._populator: Optional["AutoPopulate"] = None

    @property
    def populator(self) -> "AutoPopulate":
        if self._populator is None:
            raise RuntimeError(f"{self.__class__.__name__} is not bound to an AutoPopulate")
        return self._populator

    def bind(self, populator: "AutoPopulate") -> None:
        self._populator = populator

    def prepare(self, unpopulated: Relation) -> None:
        return None

    def execute(self, key: Dict[str, Any], make: MakeFn, args: Sequence[Any] = ()) -> None:
        raise NotImplementedError

    def post_execution(self, key: Dict[str, Any]) -> None:
        return None

    def finalize(self) -> None:
        return None


def run_in_transaction(populator: "AutoPopulate", key: Dict[str, Any], make: MakeFn, args: Sequence[Any]) -> None:
    """Executa `make(key, *args)` em uma transação (commit no sucesso, rollback no erro)."""
    connection = populator.target.connection
    connection.start_transaction()
    try:
        make(key, *args)
    except BaseException:
        connection.cancel_transaction()
        raise
    connection.commit_transaction()


class LocalStrategy(BaseStrategy):
    """Computa cada chave no próprio processo, de forma síncrona."""

    def execute(self, key: Dict[str, Any], make: MakeFn, args: Sequence[Any] = ()) -> None:
        run_in_transaction(self.populator, key, make, args)


class PopulateTask:
    """
    Unidade de trabalho despachada a um scheduler externo.

    Ao rodar, computa a chave e faz a própria contabilidade: libera (ou
    marca `done`) a reserva e executa o gancho pós-execução no sucesso,
    ou registra o erro no job e re-levanta a exceção na falha.
    """

    def __init__(
        self,
        populator: "AutoPopulate",
        key: Dict[str, Any],
        make: MakeFn,
        args: Sequence[Any] = (),
        *,
        reserved: bool = False,
    ):
        self.populator = populator
        self.key = dict(key)
        self.make = make
        self.args = tuple(args)
        self.reserved = reserved

    def __repr__(self) -> str:
        return f"<PopulateTask {self.populator.target.class_name} {self.key}>"

    def __call__(self) -> None:
        populator = self.populator
        try:
            run_in_transaction(populator, self.key, self.make, self.args)
        except Exception as e:
            populator.record_failure(self.key, exception_to_error(e))
            raise
        populator.record_success(self.key, reserved=self.reserved)
        populator.strategy.post_execution(self.key)
