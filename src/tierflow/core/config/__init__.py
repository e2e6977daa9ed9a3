# src/tierflow/core/config/__init__.py

"""
Camada de configuração do tierflow.

Este pacote carrega, mescla e identifica a configuração efetiva usada
pela conexão, pelo schema, pelo delete em cascata e pela engine de
população.

A configuração no tierflow é:
    - declarativa
    - determinística
    - separada do catálogo do banco

Responsabilidades do pacote:
    - Carregamento de defaults (empacotados ou explícitos) + overrides locais
    - Resolução da configuração final via deep-merge determinístico
    - Hash canônico (configuração, chaves de população, requisições de cache)
    - Aplicação do nível de logging configurado

Invariantes:
    - A configuração final é um dicionário puro (dict)
    - Conflitos estruturais são tratados como erro

Limites explícitos:
    - Não abre conexões
    - Não valida semântica de domínio
"""

from .errors import (
    ConfigError,
    ConfigTypeConflictError,
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)
from .hashing import compute_config_hash, compute_key_hash
from .loader import configure_logging, get_setting, load_config
from .merge import deep_merge

__all__ = [
    "ConfigError",
    "ConfigTypeConflictError",
    "DefaultsNotFoundError",
    "InvalidConfigRootTypeError",
    "UnsupportedConfigFormatError",
    "compute_config_hash",
    "compute_key_hash",
    "configure_logging",
    "deep_merge",
    "get_setting",
    "load_config",
]
