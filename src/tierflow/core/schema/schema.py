# src/tierflow/core/schema/schema.py
"""
Schema: um banco (com prefixo opcional) carregado em memória.

O `Schema` é o ponto de entrada do tierflow para um conjunto de tabelas:

    - carrega tabelas/colunas (lazy, memoizado) via schema.loader
    - carrega o grafo de dependências e os níveis via schema.graph
    - fornece relvars por nome de tabela ou nome de classe
    - é dono das tabelas `~jobs` e `~cache_requests`
    - descreve, faz backup e restaura o conteúdo das tabelas

Invariantes:
    - `tables`, `dependencies` e `levels` são snapshots somente leitura,
      reconstruídos por inteiro após `reload(force=True)`
    - O schema se registra na conexão ao ser criado

Limites explícitos:
    - Não declara nem altera tabelas de usuário
"""

from __future__ import annotations

import logging
import time
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from tierflow.core.backup.store import BackupFileMeta, BackupStore
from tierflow.core.config.loader import get_setting
from tierflow.core.connection.connection import Connection
from tierflow.core.exceptions import UnknownTableError
from tierflow.core.execution.cached import CacheRequestTable
from tierflow.core.populate.jobs import JobTable
from tierflow.core.relation.encoding import temporal_as_text
from tierflow.core.relation.relvar import Relvar

from .catalog import Catalog
from .graph import DependencyGraph, build_graph
from .loader import load_tables, table_pattern
from .registry import TableRegistry
from .types import TableDescriptor, TableId, Tier

logger = logging.getLogger(__name__)

TableRef = Union[str, TableId, TableDescriptor]


class Schema:
    """
    Args:
        connection: Conexão compartilhada.
        database: Banco (schema SQL). SQLite usa "main" por padrão.
        prefix: Prefixo literal das tabelas deste schema no banco.
        config: Configuração efetiva (safemode, populate.*, cache.*).
    """

    def __init__(
        self,
        connection: Connection,
        database: Optional[str] = None,
        prefix: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        if database is None:
            if connection.dialect_name != "sqlite":
                raise ValueError("database is required for non-SQLite connections")
            database = "main"
        self.connection = connection
        self.database = database
        self.config = config if config is not None else {}
        self.prefix = prefix if prefix is not None else str(get_setting(self.config, "schema.prefix", "") or "")

        self._tables: Optional[TableRegistry] = None
        self._dependencies: Optional[DependencyGraph] = None
        self._jobs: Optional[JobTable] = None
        self._cache_requests: Optional[CacheRequestTable] = None
        self._populated: Set[TableId] = set()

        connection.register_schema(self)

    def __repr__(self) -> str:
        suffix = f" prefix={self.prefix!r}" if self.prefix else ""
        return f"<Schema {self.database}{suffix}>"

    @property
    def table_regexp(self) -> str:
        return table_pattern(self.prefix)

    # ------------------------------------------------------------------
    # Carga
    # ------------------------------------------------------------------

    def reload(self, force: bool = True) -> None:
        """Invalida os snapshots; a próxima leitura recarrega do catálogo."""
        if not force and self._tables is not None:
            return
        self._tables = None
        self._dependencies = None

    @property
    def loaded(self) -> bool:
        return self._tables is not None

    @property
    def tables(self) -> TableRegistry:
        if self._tables is None:
            self._tables = load_tables(Catalog(self.connection), self.database, self.prefix)
        return self._tables

    @property
    def dependencies(self) -> DependencyGraph:
        if self._dependencies is None:
            registry = self.tables
            started = time.perf_counter()
            foreign_keys = Catalog(self.connection).list_foreign_keys(self.database)
            self._dependencies = build_graph(foreign_keys, registry, self.database, self.table_regexp)
            logger.info(
                "loaded %d table dependencies of %s in %.3fs",
                sum(len(self._dependencies.parents(t)) for t in self._dependencies.nodes),
                self.database,
                time.perf_counter() - started,
            )
        return self._dependencies

    @property
    def levels(self) -> Dict[TableId, int]:
        return self.dependencies.levels

    # ------------------------------------------------------------------
    # Tabelas
    # ------------------------------------------------------------------

    def descriptor(self, ref: TableRef) -> TableDescriptor:
        """Resolve uma tabela por `TableId`, nome no banco ou nome de classe."""
        if isinstance(ref, TableDescriptor):
            return ref
        if isinstance(ref, TableId):
            return self.tables.get(ref)
        table_id = TableId(self.database, ref)
        if table_id in self.tables and not self.tables.is_external(table_id):
            return self.tables.get(table_id)
        if "." in ref:
            return self.tables.by_class_name(ref)
        for d in self.tables:
            if d.class_name.rsplit(".", 1)[-1] == ref:
                return d
        raise UnknownTableError(
            f"Table {ref} is not declared in {self.database}",
            details={"table": ref, "database": self.database},
        )

    def relvar(self, ref: TableRef) -> Relvar:
        return Relvar(self, self.descriptor(ref))

    def __getitem__(self, ref: TableRef) -> Relvar:
        return self.relvar(ref)

    def mark_populated(self, table_id: TableId) -> None:
        self._populated.add(table_id)

    def is_populated(self, table_id: TableId) -> bool:
        return table_id in self._populated

    @property
    def jobs(self) -> JobTable:
        if self._jobs is None:
            self._jobs = JobTable(self.connection, self.database, self.prefix)
            self.reload(force=True)
        return self._jobs

    @property
    def cache_requests(self) -> CacheRequestTable:
        if self._cache_requests is None:
            self._cache_requests = CacheRequestTable(self.connection, self.database, self.prefix)
            self.reload(force=True)
        return self._cache_requests

    # ------------------------------------------------------------------
    # Descrição / backup
    # ------------------------------------------------------------------

    def describe(self) -> str:
        """Listagem textual das tabelas: nome CamelCase, tier e comentário."""
        lines = [f"schema {self.database}" + (f" with table prefix {self.prefix}" if self.prefix else "")]
        lines.append(f"{'Table name':<25}{'Tier':<16}Comment")
        lines.append("#" * 80)
        for d in self.tables:
            name = d.class_name.rsplit(".", 1)[-1]
            lines.append(f"{name:<25}{d.tier.value:<16}{d.comment}")
        return "\n".join(lines)

    def _by_level(self, descriptors: Iterable[TableDescriptor]) -> List[TableDescriptor]:
        levels = self.levels
        return sorted(descriptors, key=lambda d: (levels[d.table_id], d.name))

    def backup(
        self,
        directory: Union[str, Path],
        tiers: Iterable[Union[str, Tier]] = ("lookup", "manual"),
        restriction: Any = None,
        day: Optional[date] = None,
    ) -> List[BackupFileMeta]:
        """
        Salva o conteúdo das tabelas dos tiers informados em arquivos joblib,
        em ordem hierárquica: `<directory>/<database>/<YYYY-MM-DD>/<ClassName>.joblib`.
        """
        wanted = {Tier(t) for t in tiers}
        store = BackupStore(root=directory)
        metas = []
        for d in self._by_level(d for d in self.tables if d.tier in wanted):
            rel = self.relvar(d)
            if restriction is not None:
                rel = rel & restriction
            meta = store.save(database=self.database, class_name=d.class_name, contents=rel.fetch(), day=day)
            logger.info("saved %s to %s (%d tuples)", d.class_name, meta.path, meta.rows)
            metas.append(meta)
        return metas

    def restore(self, directory: Union[str, Path]) -> Dict[str, int]:
        """Reinsere (modo ignore), em ordem de nível, as tuplas salvas em `directory`."""
        files = {p.stem: p for p in BackupStore.list_files(directory)}
        descriptors = []
        for stem in files:
            descriptor = self.descriptor(stem)
            descriptors.append(descriptor)

        inserted: Dict[str, int] = {}
        for d in self._by_level(descriptors):
            stem = d.class_name.rsplit(".", 1)[-1]
            contents = [temporal_as_text(d, row) for row in BackupStore.load(files[stem])]
            logger.info("inserting %d tuples into %s", len(contents), d.class_name)
            inserted[d.class_name] = self.relvar(d).insert(contents, mode="ignore")
        return inserted
