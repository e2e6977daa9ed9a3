# src/tierflow/core/config/hashing.py
"""
Hashing canônico do tierflow.

Este módulo implementa o hash determinístico utilizado para:
    - identidade estrutural da configuração efetiva
    - `key_hash` de chaves de população na tabela de jobs
    - `request_hash` de requisições de cache ({disk_label, request_path})
    - agrupamento de chaves de granularidade no cache-staging

Política de hashing (v1):
    - Serialização JSON canônica
    - Ordenação estável de chaves
    - Separadores compactos
    - Codificação UTF-8
    - Algoritmo SHA-256

Invariantes:
    - Estruturas equivalentes produzem o mesmo hash
    - O valor gerado é sempre uma string hexadecimal de 64 caracteres
    - Nenhuma mutação ocorre sobre o input
"""


import json
import hashlib
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Mapping

import numpy as np


def _canonical_default(value: Any) -> Any:
    """Converte valores vindos do banco (numpy, Decimal, datas, bytes) para JSON."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)


def _digest(payload: Any) -> str:
    canonical_json = json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_canonical_default,
    )
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera um hash determinístico da configuração efetiva.

    Args:
        config (Dict[str, Any]): Configuração efetiva.

    Returns:
        str: Hash SHA-256 hexadecimal da configuração.

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """

    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )

    return _digest(config)


def compute_key_hash(key: Mapping[str, Any]) -> str:
    """
    Gera o hash de conteúdo de uma chave (dict atributo -> valor).

    A mesma chave produz o mesmo hash independentemente da ordem dos
    atributos e do tipo numérico de origem (ex.: `numpy.int64(3)` e `3`).

    Args:
        key (Mapping[str, Any]): Chave primária (ou de granularidade).

    Returns:
        str: Hash SHA-256 hexadecimal de 64 caracteres.

    Raises:
        TypeError: Se a chave não for um mapeamento.
    """
    if not isinstance(key, Mapping):
        raise TypeError(
            f"Chave para hashing deve ser mapping, recebido: {type(key).__name__}"
        )

    return _digest({str(k): v for k, v in key.items()})
