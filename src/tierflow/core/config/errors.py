# src/tierflow/core/config/errors.py
"""
Exceções canônicas da camada de configuração do tierflow.

Todas as exceções de configuração herdam de `ConfigError`, que por sua
vez herda de `TierflowException`, permitindo captura genérica de falhas
estruturais antes que qualquer conexão seja aberta.

Limites explícitos:
    - Não realiza fallback ou recovery
    - Não depende de conexão, schema ou engine de população
"""

from __future__ import annotations

from dataclasses import dataclass

from tierflow.core.exceptions import TierflowException


@dataclass(eq=False)
class ConfigError(TierflowException):
    """
    Exceção base para erros relacionados à configuração do tierflow.

    Limites explícitos:
        - Não representa erro de catálogo (ver SchemaLoadError)
        - Não representa falha de computação de uma chave
    """


@dataclass(eq=False)
class DefaultsNotFoundError(ConfigError):
    """
    Exceção levantada quando o arquivo de defaults informado não existe.

    Invariantes:
        - Sem defaults não existe configuração efetiva válida
    """


@dataclass(eq=False)
class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando o formato do arquivo de configuração
    não é suportado pelo loader.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


@dataclass(eq=False)
class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz da configuração
    não é um dicionário (`dict`).
    """


@dataclass(eq=False)
class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"populate": {"reserve_jobs": false}}
        - override: {"populate": "yes"}

    Invariantes:
        - Nenhum merge parcial é produzido em caso de conflito
    """
