"""tierflow — Backup (core).

Persistência de conteúdo de tabelas em arquivos joblib, usada por
`Schema.backup` e `Schema.restore`.
"""

from .store import BackupFileMeta, BackupStore  # noqa: F401
