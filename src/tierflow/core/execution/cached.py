# src/tierflow/core/execution/cached.py
"""
Estratégia com staging de cache em disco.

Antes de computar no cluster, os dados brutos de cada grupo de chaves
(definido pela relação de granularidade) são copiados para um volume
rápido. Cada grupo gera um pedido de cache, deduplicado pelo hash de
`{disk_label, request_path}` e registrado na tabela `~cache_requests`.
Os jobs de cluster só começam quando a flag de gating do pedido
(`cache_<hash[:8]>`) é liberada pelo serviço de cache.

Fluxo:
    prepare(unpopulated)
        - chaves de granularidade das chaves faltantes
        - pedido de cache criado se ausente (tamanho medido em disco)
        - flag registrada no scheduler
        - um job pré-criado por grupo, exigindo (io_resource, io_load) e (flag, 1)
    execute(key)
        - incrementa `nb_clients` do pedido (atômico, no banco)
        - anexa a tarefa ao job do grupo
    finalize()
        - submete jobs com tarefas, descarta os vazios
    post_execution(key)
        - incrementa `fulfilled_requests` do pedido
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import sqlalchemy as sa

from tierflow.core.config.hashing import compute_key_hash
from tierflow.core.config.loader import get_setting
from tierflow.core.connection.connection import Connection
from tierflow.core.exceptions import DuplicateKeyError
from tierflow.core.populate.strategy import BaseStrategy, MakeFn, PopulateTask
from tierflow.core.relation.relation import Relation

from .scheduler import ClusterJob, ClusterScheduler, Resource

logger = logging.getLogger(__name__)

CACHE_REQUESTS_TABLE = "~cache_requests"

CacheRequestFn = Callable[[Mapping[str, Any]], Tuple[str, str]]


def directory_size(path: Union[str, Path]) -> int:
    """Tamanho em bytes de todos os arquivos sob `path` (sem seguir links)."""
    path = Path(path)
    if not path.is_dir():
        raise FileNotFoundError(f"cache source directory not found: {path}")
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            full = os.path.join(root, name)
            if not os.path.islink(full):
                total += os.path.getsize(full)
    return total


def cache_flag(request_hash: str) -> str:
    return f"cache_{request_hash[:8]}"


class CacheRequestTable:
    """Acesso à tabela `<prefix>~cache_requests` de um banco."""

    def __init__(self, connection: Connection, database: str, prefix: str = "", *, create: bool = True):
        self.connection = connection
        self.database = database
        self.name = f"{prefix}{CACHE_REQUESTS_TABLE}"
        self.table = sa.Table(
            self.name,
            sa.MetaData(),
            sa.Column("request_hash", sa.String(64), primary_key=True),
            sa.Column("disk_label", sa.String(255), nullable=False),
            sa.Column("request_path", sa.String(1023), nullable=False),
            sa.Column("request_size", sa.BigInteger, nullable=False, server_default="0"),
            sa.Column("nb_clients", sa.Integer, nullable=False, server_default="0"),
            sa.Column("fulfilled_requests", sa.Integer, nullable=False, server_default="0"),
            schema=database,
            comment="disk cache requests",
        )
        if create:
            connection.create_table(self.table)

    @staticmethod
    def request_hash(disk_label: str, request_path: str) -> str:
        return compute_key_hash({"disk_label": disk_label, "request_path": request_path})

    def get(self, request_hash: str) -> Optional[Dict[str, Any]]:
        rows = self.connection.query(sa.select(self.table).where(self.table.c.request_hash == request_hash))
        return rows[0] if rows else None

    def exists(self, request_hash: str) -> bool:
        return self.get(request_hash) is not None

    def ensure(self, disk_label: str, request_path: str, storage_root: Union[str, Path]) -> str:
        """Cria o pedido se ainda não existir e retorna seu hash."""
        request_hash = self.request_hash(disk_label, request_path)
        if self.exists(request_hash):
            return request_hash

        size = directory_size(Path(storage_root) / disk_label / request_path)
        # a medição pode demorar; outro cliente pode ter criado o pedido
        if not self.exists(request_hash):
            try:
                self.connection.execute(
                    sa.insert(self.table).values(
                        request_hash=request_hash,
                        disk_label=disk_label,
                        request_path=request_path,
                        request_size=size,
                        nb_clients=0,
                        fulfilled_requests=0,
                    )
                )
                logger.info("cache request %s created for %s:%s (%d bytes)", request_hash[:8], disk_label, request_path, size)
            except DuplicateKeyError:
                logger.debug("cache request %s created concurrently", request_hash[:8])
        return request_hash

    def _increment(self, request_hash: str, column: str) -> int:
        c = self.table.c
        return self.connection.execute(
            sa.update(self.table).where(c.request_hash == request_hash).values({column: c[column] + 1})
        )

    def increment_clients(self, request_hash: str) -> int:
        return self._increment(request_hash, "nb_clients")

    def increment_fulfilled(self, request_hash: str) -> int:
        return self._increment(request_hash, "fulfilled_requests")


class CacheStagingStrategy(BaseStrategy):
    """
    Estratégia assíncrona com um job de cluster por grupo de granularidade.

    Args:
        scheduler: Scheduler de cluster.
        granularity: Relação que define os grupos de cache.
        cache_request: `cache_request(gran_key) -> (disk_label, request_path)`.
        requests: Tabela de pedidos de cache.
        storage_root: Raiz dos discos de origem (`<root>/<disk>/<path>`).
        io_resource: Recurso que limita a carga de I/O do servidor de cache.
        io_load: Slots de I/O por job (<= 0 dispensa o recurso).
        user_data: Dados extras anexados a cada job.
    """

    synchronous = False

    def __init__(
        self,
        scheduler: ClusterScheduler,
        granularity: Relation,
        cache_request: CacheRequestFn,
        requests: CacheRequestTable,
        *,
        storage_root: Union[str, Path] = "/LD",
        io_resource: str = "io_serenity",
        io_load: int = 1,
        user_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.scheduler = scheduler
        self.granularity = granularity
        self.cache_request = cache_request
        self.requests = requests
        self.storage_root = Path(storage_root)
        self.io_resource = io_resource
        self.io_load = io_load
        self.user_data = dict(user_data or {})
        self._jobs: Dict[str, ClusterJob] = {}

    @classmethod
    def from_config(
        cls,
        scheduler: ClusterScheduler,
        granularity: Relation,
        cache_request: CacheRequestFn,
        requests: CacheRequestTable,
        config: Optional[Dict[str, Any]],
    ) -> "CacheStagingStrategy":
        return cls(
            scheduler,
            granularity,
            cache_request,
            requests,
            storage_root=get_setting(config, "cache.storage_root", "/LD"),
            io_resource=get_setting(config, "cache.io_resource", "io_serenity"),
            io_load=int(get_setting(config, "cache.io_load", 1)),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _granularity_key(self, key: Mapping[str, Any]) -> Dict[str, Any]:
        attrs = self.granularity.primary_key
        if all(a in key for a in attrs):
            return {a: key[a] for a in attrs}
        return (self.granularity & dict(key)).fetch1(*attrs)

    def _ensure_request(self, gran_key: Mapping[str, Any]) -> str:
        disk_label, request_path = self.cache_request(gran_key)
        return self.requests.ensure(disk_label, request_path, self.storage_root)

    def _resources(self, request_hash: str) -> List[Resource]:
        resources: List[Resource] = []
        if self.io_load and self.io_load > 0:
            resources.append((self.io_resource, self.io_load))
        resources.append((cache_flag(request_hash), 1))
        return resources

    # ------------------------------------------------------------------
    # Ganchos
    # ------------------------------------------------------------------

    def prepare(self, unpopulated: Relation) -> None:
        self._jobs = {}
        if not unpopulated.exists():
            return
        attrs = self.granularity.primary_key
        gran_keys = (self.granularity & unpopulated).fetch(*attrs, order_by=attrs)
        for gran_key in gran_keys:
            request_hash = self._ensure_request(gran_key)
            self.scheduler.register_flag(cache_flag(request_hash))
            job = self.scheduler.create_job(
                dict(self.user_data, target=self.populator.target.class_name, request_hash=request_hash)
            )
            job.complex_resources = self._resources(request_hash)
            self._jobs[compute_key_hash(gran_key)] = job
        logger.info("prepared %d cache jobs for %s", len(self._jobs), self.populator.target.class_name)

    def execute(self, key: Dict[str, Any], make: MakeFn, args: Sequence[Any] = ()) -> None:
        populator = self.populator
        gran_key = self._granularity_key(key)
        request_hash = self._ensure_request(gran_key)
        self.requests.increment_clients(request_hash)
        job = self._jobs[compute_key_hash(gran_key)]
        job.create_task(PopulateTask(populator, key, make, args, reserved=populator.reserving), ())

    def post_execution(self, key: Dict[str, Any]) -> None:
        disk_label, request_path = self.cache_request(self._granularity_key(key))
        request_hash = self.requests.request_hash(disk_label, request_path)
        if self.requests.exists(request_hash):
            self.requests.increment_fulfilled(request_hash)

    def finalize(self) -> None:
        submitted = discarded = 0
        for job in self._jobs.values():
            if job.task_count > 0:
                job.submit()
                submitted += 1
            else:
                job.discard()
                discarded += 1
        self._jobs = {}
        logger.info("cache jobs: %d submitted, %d discarded", submitted, discarded)
