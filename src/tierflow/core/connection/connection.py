# src/tierflow/core/connection/connection.py
"""
Gerenciador de sessão e transações do tierflow.

Este módulo define a `Connection`, dona do canal com o banco. O transporte
é do SQLAlchemy; aqui vive apenas a máquina de estados de transação:

    Disconnected → Connected → InTransaction → Connected

Responsabilidades do módulo:
    - Abrir o canal sob demanda (lazy) e reabrir após queda
    - Reexecutar o statement de inicialização a cada nova sessão
    - Expor start/commit/cancel de transação
    - Aplicar a política de reconexão durante transações
    - Distinguir violação de unicidade (`DuplicateKeyError`) de erros genéricos
    - Manter o registro de schemas carregados nesta conexão

Invariantes:
    - Fora de transação, cada statement é confirmado imediatamente
    - `is_connected` é calculado, nunca armazenado
    - Uma transação perdida nunca é ignorada silenciosamente

Limites explícitos:
    - Não interpreta o catálogo (ver core.schema)
    - Não implementa o transporte de rede
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc

from tierflow.core.config.loader import get_setting
from tierflow.core.exceptions import DuplicateKeyError, TransactionLostError, TransactionStateError

if TYPE_CHECKING:  # pragma: no cover
    from tierflow.core.schema.schema import Schema
    from tierflow.core.schema.types import TableDescriptor, TableId

logger = logging.getLogger(__name__)

Statement = Union[str, sa.sql.expression.Executable]
Params = Union[Mapping[str, Any], Sequence[Mapping[str, Any]], None]

# MySQL, SQLite e PostgreSQL, nesta ordem
_DUPLICATE_RE = re.compile(
    r"Duplicate entry|UNIQUE constraint failed|duplicate key value",
    re.IGNORECASE,
)

_LAST_INSERT_ID = {
    "mysql": "SELECT last_insert_id() AS lid",
    "sqlite": "SELECT last_insert_rowid() AS lid",
    "postgresql": "SELECT lastval() AS lid",
}


def _is_duplicate_entry(error: sa_exc.DBAPIError) -> bool:
    return bool(_DUPLICATE_RE.search(str(getattr(error, "orig", None) or error)))


class Connection:
    """
    Conexão compartilhada por todos os objetos de um ou mais schemas.

    Args:
        url: URL SQLAlchemy do banco.
        init_query: Statement executado a cada nova sessão.
        reconnect_transaction: Se True, reconecta (com warning) quando o
            servidor cai durante uma transação; se False, levanta
            `TransactionLostError` para garantir atomicidade.
        engine_options: Kwargs repassados a `sqlalchemy.create_engine`.
        engine: Engine já construída (ignora `url`/`engine_options`).
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        init_query: Optional[str] = None,
        reconnect_transaction: bool = True,
        engine_options: Optional[Dict[str, Any]] = None,
        engine: Optional[sa.engine.Engine] = None,
    ):
        if engine is None:
            if not url:
                raise ValueError("Connection requires a url or an engine")
            engine = sa.create_engine(url, **(engine_options or {}))
        self._engine = engine
        self.url = str(engine.url)
        self.init_query = init_query
        self.reconnect_transaction = reconnect_transaction
        self._conn: Optional[sa.engine.Connection] = None
        self._in_transaction = False
        self._schemas: Dict[Tuple[str, str], "Schema"] = {}

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "Connection":
        return cls(
            get_setting(config, "connection.url", "sqlite://"),
            init_query=get_setting(config, "connection.init_query"),
            reconnect_transaction=bool(get_setting(config, "connection.reconnect_transaction", True)),
        )

    def __repr__(self) -> str:
        state = "in transaction" if self._in_transaction else "idle"
        return f"<Connection {self._engine.url!r} ({state})>"

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def engine(self) -> sa.engine.Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def is_connected(self) -> bool:
        conn = self._conn
        connected = conn is not None and not conn.closed and not conn.invalidated

        if not connected and self._in_transaction:
            if self.reconnect_transaction:
                logger.warning("reconnecting after server disconnected during a transaction")
            else:
                raise TransactionLostError(
                    "server disconnected during a transaction",
                    details={"url": self.url},
                    hint="Set reconnect_transaction=True to tolerate reconnects",
                )
        return connected

    def _connect(self) -> None:
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
        self._conn = self._engine.connect()
        logger.debug("opened connection to %s", self._engine.url)
        if self.init_query:
            self._conn.exec_driver_sql(self.init_query)
            self._conn.commit()
        if self._in_transaction:
            # a transação anterior foi perdida; o restante dela continua agrupado
            self._conn.begin()

    def _ensure_connected(self) -> sa.engine.Connection:
        if not self.is_connected:
            self._connect()
        assert self._conn is not None
        return self._conn

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _run(self, statement: Statement, params: Params) -> Tuple[Optional[List[Dict[str, Any]]], int]:
        conn = self._ensure_connected()
        if isinstance(statement, str):
            statement = sa.text(statement)
        try:
            result = conn.execute(statement) if params is None else conn.execute(statement, params)
            rows = [dict(r) for r in result.mappings().all()] if result.returns_rows else None
            count = result.rowcount
        except sa_exc.DBAPIError as e:
            if not self._in_transaction and not conn.invalidated:
                conn.rollback()
            if isinstance(e, sa_exc.IntegrityError) and _is_duplicate_entry(e):
                raise DuplicateKeyError(
                    str(e.orig),
                    details={"statement": str(statement)},
                ) from e
            raise
        if not self._in_transaction:
            conn.commit()
        return rows, count

    def query(self, statement: Statement, params: Params = None) -> List[Dict[str, Any]]:
        """Executa um statement e retorna as linhas como dicts (vazio se não houver)."""
        rows, _ = self._run(statement, params)
        return rows or []

    def execute(self, statement: Statement, params: Params = None) -> int:
        """Executa um statement de mutação e retorna o número de linhas afetadas."""
        _, count = self._run(statement, params)
        return count

    def create_table(self, table: sa.Table) -> bool:
        """Cria `table` se ainda não existir; retorna True quando criada."""
        conn = self._ensure_connected()
        exists = sa.inspect(conn).has_table(table.name, schema=table.schema)
        if not exists:
            table.create(conn)
            logger.info("created table %s", table.fullname)
        if not self._in_transaction:
            conn.commit()
        return not exists

    def last_insert_id(self) -> Any:
        sql = _LAST_INSERT_ID.get(self.dialect_name)
        if sql is None:
            raise NotImplementedError(f"last_insert_id is not supported for {self.dialect_name}")
        return self.query(sql)[0]["lid"]

    # ------------------------------------------------------------------
    # Transações
    # ------------------------------------------------------------------

    def start_transaction(self) -> None:
        if self._in_transaction:
            raise TransactionStateError("A transaction is already in progress")
        conn = self._ensure_connected()
        if conn.in_transaction():
            conn.rollback()
        conn.begin()
        self._in_transaction = True
        logger.debug("transaction started")

    def commit_transaction(self) -> None:
        if not self._in_transaction:
            raise TransactionStateError("No transaction to commit")
        conn = self._ensure_connected()
        conn.commit()
        self._in_transaction = False
        logger.debug("transaction committed")

    def cancel_transaction(self) -> None:
        was_active = self._in_transaction
        self._in_transaction = False
        conn = self._conn
        if conn is not None and not conn.closed and not conn.invalidated and conn.in_transaction():
            conn.rollback()
            if was_active:
                logger.debug("transaction rolled back")

    @contextmanager
    def transaction(self) -> Iterator["Connection"]:
        """Context manager: commit no sucesso, rollback e re-raise em qualquer erro."""
        self.start_transaction()
        try:
            yield self
        except BaseException:
            self.cancel_transaction()
            raise
        self.commit_transaction()

    def close(self) -> None:
        conn = self._conn
        if conn is not None and not conn.closed:
            logger.info("closing connection to %s", self._engine.url)
            conn.close()
        self._conn = None
        self._in_transaction = False

    # ------------------------------------------------------------------
    # Schemas carregados
    # ------------------------------------------------------------------

    def register_schema(self, schema: "Schema") -> None:
        self._schemas[(schema.database, schema.prefix)] = schema

    @property
    def schemas(self) -> List["Schema"]:
        return list(self._schemas.values())

    def find_table(self, table_id: "TableId") -> Optional[Tuple["Schema", "TableDescriptor"]]:
        """Localiza o descritor de uma tabela entre os schemas carregados."""
        for schema in self._schemas.values():
            if schema.database != table_id.database:
                continue
            descriptor = schema.tables.find(table_id)
            if descriptor is not None:
                return schema, descriptor
        return None

    def reload(self) -> None:
        """Recarrega todos os schemas registrados nesta conexão."""
        for schema in self._schemas.values():
            schema.reload(force=True)
