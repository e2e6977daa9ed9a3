# src/tierflow/core/populate/jobs.py
"""
Tabela de jobs (`~jobs`): o mutex distribuído da auto-população.

Cada registro identifica uma chave de uma tabela alvo pelo hash canônico
da chave primária. A unicidade de `(table_name, key_hash)` é garantida
pelo banco, de modo que dois workers nunca reservam a mesma chave:

    reserve  → INSERT; duplicata significa "já reservada por outro worker"
    complete → DELETE (ou status `done` quando os jobs concluídos são mantidos)
    error    → status `error` com a mensagem truncada em 1023 caracteres

Limites explícitos:
    - Não executa computações
    - Não decide quais chaves faltam (ver populate.engine)
"""

from __future__ import annotations

import logging
import os
import socket
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

import sqlalchemy as sa

from tierflow.core.config.hashing import compute_key_hash
from tierflow.core.connection.connection import Connection
from tierflow.core.errors import MAX_ERROR_MESSAGE_LENGTH
from tierflow.core.exceptions import DuplicateKeyError

from .types import JobStatus

logger = logging.getLogger(__name__)

JOBS_TABLE = "~jobs"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _truncate(message: str) -> str:
    if len(message) > MAX_ERROR_MESSAGE_LENGTH:
        return message[: MAX_ERROR_MESSAGE_LENGTH - 3] + "..."
    return message


class JobTable:
    """
    Acesso à tabela `<prefix>~jobs` de um banco.

    Args:
        connection: Conexão compartilhada.
        database: Banco (schema SQL) dono da tabela.
        prefix: Prefixo literal das tabelas do schema.
        create: Cria a tabela se ainda não existir.
    """

    def __init__(self, connection: Connection, database: str, prefix: str = "", *, create: bool = True):
        self.connection = connection
        self.database = database
        self.name = f"{prefix}{JOBS_TABLE}"
        self.table = sa.Table(
            self.name,
            sa.MetaData(),
            sa.Column("table_name", sa.String(255), primary_key=True),
            sa.Column("key_hash", sa.String(64), primary_key=True),
            sa.Column("status", sa.String(16), nullable=False),
            sa.Column("host", sa.String(255), nullable=False, server_default=""),
            sa.Column("pid", sa.Integer, nullable=False, server_default="0"),
            sa.Column("error_message", sa.String(MAX_ERROR_MESSAGE_LENGTH), nullable=False, server_default=""),
            sa.Column("timestamp", sa.DateTime, nullable=False),
            schema=database,
            comment="job reservations",
        )
        if create and connection.create_table(self.table):
            logger.info("created job table %s.%s", database, self.name)

    def __repr__(self) -> str:
        return f"<JobTable {self.database}.{self.name}>"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def key_hash(key: Union[Mapping[str, Any], str]) -> str:
        return key if isinstance(key, str) else compute_key_hash(key)

    def _where(self, table_name: str, key: Union[Mapping[str, Any], str]) -> List[sa.sql.ColumnElement]:
        c = self.table.c
        return [c.table_name == table_name, c.key_hash == self.key_hash(key)]

    def _record(self, table_name: str, key: Union[Mapping[str, Any], str], status: JobStatus, message: str = "") -> Dict[str, Any]:
        return {
            "table_name": table_name,
            "key_hash": self.key_hash(key),
            "status": status.value,
            "host": socket.gethostname(),
            "pid": os.getpid(),
            "error_message": _truncate(message),
            "timestamp": _now(),
        }

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def reserve(self, table_name: str, key: Union[Mapping[str, Any], str]) -> bool:
        """Reserva a chave; False quando outro worker já a reservou."""
        try:
            self.connection.execute(sa.insert(self.table).values(self._record(table_name, key, JobStatus.RESERVED)))
        except DuplicateKeyError:
            logger.debug("key %s of %s already reserved", self.key_hash(key)[:12], table_name)
            return False
        return True

    def complete(self, table_name: str, key: Union[Mapping[str, Any], str], *, keep: bool = False) -> None:
        """Libera a reserva (ou marca `done` quando `keep`)."""
        if keep:
            self.connection.execute(
                sa.update(self.table)
                .where(*self._where(table_name, key))
                .values(status=JobStatus.DONE.value, timestamp=_now(), error_message="")
            )
        else:
            self.connection.execute(sa.delete(self.table).where(*self._where(table_name, key)))

    def error(self, table_name: str, key: Union[Mapping[str, Any], str], message: str) -> None:
        """Marca a chave como `error`, criando o registro se não houver reserva."""
        record = self._record(table_name, key, JobStatus.ERROR, message)
        updated = self.connection.execute(
            sa.update(self.table)
            .where(*self._where(table_name, key))
            .values(status=record["status"], error_message=record["error_message"], timestamp=record["timestamp"])
        )
        if not updated:
            try:
                self.connection.execute(sa.insert(self.table).values(record))
            except DuplicateKeyError:
                logger.warning("job record of %s changed while recording an error", table_name)

    def clear_errors(self, table_name: Optional[str] = None) -> int:
        stmt = sa.delete(self.table).where(self.table.c.status == JobStatus.ERROR.value)
        if table_name is not None:
            stmt = stmt.where(self.table.c.table_name == table_name)
        return self.connection.execute(stmt)

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def get(self, table_name: str, key: Union[Mapping[str, Any], str]) -> Optional[Dict[str, Any]]:
        rows = self.connection.query(sa.select(self.table).where(*self._where(table_name, key)))
        return rows[0] if rows else None

    def fetch(self, table_name: Optional[str] = None, status: Optional[JobStatus] = None) -> List[Dict[str, Any]]:
        stmt = sa.select(self.table).order_by(self.table.c.timestamp, self.table.c.key_hash)
        if table_name is not None:
            stmt = stmt.where(self.table.c.table_name == table_name)
        if status is not None:
            stmt = stmt.where(self.table.c.status == JobStatus(status).value)
        return self.connection.query(stmt)

    def orphans(self, older_than: Union[timedelta, float] = timedelta(hours=24)) -> List[Dict[str, Any]]:
        """Reservas mais antigas que `older_than` (workers que morreram sem liberar)."""
        if not isinstance(older_than, timedelta):
            older_than = timedelta(seconds=float(older_than))
        cutoff = _now() - older_than
        c = self.table.c
        return self.connection.query(
            sa.select(self.table)
            .where(c.status == JobStatus.RESERVED.value, c.timestamp < cutoff)
            .order_by(c.timestamp)
        )
