"""Persistência de backups de tabelas do schema (v1).

Cada tabela salva vira um arquivo joblib contendo a lista de tuplas
(dicts) da tabela, gravado em caminho determinístico:

    <root>/<database>/<YYYY-MM-DD>/<ClassName>.joblib

Decisões (v1):
- Formato: joblib
- O nome do arquivo é o CamelCase da tabela (sem o banco)
- A ordem de gravação/restauração é responsabilidade do Schema (níveis)

Limites explícitos:
- Cada tabela deve caber em memória
- Não valida o conteúdo contra o schema no load (o insert valida)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import joblib

SUFFIX = ".joblib"


@dataclass(frozen=True)
class BackupFileMeta:
    """Metadata mínima de um arquivo de backup gravado."""

    table: str
    path: str
    rows: int
    format: str = "joblib"
    version: str = "v1"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "path": self.path,
            "rows": self.rows,
            "format": self.format,
            "version": self.version,
        }


class BackupStore:
    """Store canônica (v1) para gravação e leitura de backups de tabelas."""

    def __init__(self, *, root: Union[str, Path]):
        self.root = Path(root)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def snapshot_dir(self, database: str, day: Optional[date] = None) -> Path:
        """Diretório do backup de `database` no dia informado (default: hoje)."""
        day = day or date.today()
        return self.root / database / day.strftime("%Y-%m-%d")

    @staticmethod
    def file_name(class_name: str) -> str:
        return class_name.rsplit(".", 1)[-1] + SUFFIX

    # ------------------------------------------------------------------
    # Persist / Load
    # ------------------------------------------------------------------
    def save(self, *, database: str, class_name: str, contents: List[Dict[str, Any]], day: Optional[date] = None) -> BackupFileMeta:
        directory = self.snapshot_dir(database, day)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.file_name(class_name)
        joblib.dump(list(contents), path)
        return BackupFileMeta(table=class_name, path=str(path), rows=len(contents))

    @staticmethod
    def list_files(directory: Union[str, Path]) -> List[Path]:
        """Arquivos de backup de um diretório de snapshot, em ordem de nome."""
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(str(directory))
        return sorted(directory.glob(f"*{SUFFIX}"))

    @staticmethod
    def load(path: Union[str, Path]) -> List[Dict[str, Any]]:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(str(path))
        return joblib.load(path)


__all__ = ["BackupStore", "BackupFileMeta"]
