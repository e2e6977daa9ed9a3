# src/tierflow/core/config/loader.py
"""
Loader canônico de configuração do tierflow.

A configuração efetiva é resolvida a partir de:
    - um arquivo de defaults (o `defaults.yaml` empacotado, ou um caminho explícito)
    - um arquivo local de overrides (opcional)

Responsabilidades do módulo:
    - Carregar arquivos de configuração em YAML ou JSON
    - Validar requisitos estruturais mínimos (tipo raiz)
    - Resolver a configuração final via deep-merge determinístico
    - Expor leitura de chaves pontilhadas (`populate.reserve_jobs`)
    - Aplicar o nível de logging configurado ao logger `tierflow`

Invariantes:
    - O arquivo de defaults é obrigatório
    - O resultado é sempre um dicionário puro (`dict`)
    - Overrides nunca mutam os defaults

Limites explícitos:
    - Não valida semântica de domínio
    - Não abre conexões com o banco
"""

from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging

import yaml  # PyYAML

from .merge import deep_merge
from .hashing import compute_config_hash
from .errors import (
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)

logger = logging.getLogger(__name__)

PACKAGED_DEFAULTS = Path(__file__).with_name("defaults.yaml")

_MISSING = object()


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Carrega um arquivo de configuração e valida sua estrutura básica.

    Args:
        path (Path): Caminho para o arquivo de configuração.

    Returns:
        Dict[str, Any]: Conteúdo do arquivo carregado como dicionário.

    Raises:
        DefaultsNotFoundError: Se o arquivo não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo raiz não for um dicionário.
    """
    if not path.exists():
        raise DefaultsNotFoundError(
            f"Arquivo de configuração não encontrado: {path}",
            details={"path": str(path)},
        )

    suffix = path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

    elif suffix == ".json":
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)

    else:
        raise UnsupportedConfigFormatError(
            f"Formato não suportado: {path.suffix}",
            details={"path": str(path)},
        )

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}",
            details={"path": str(path)},
        )

    return data


def load_config(
    *,
    defaults_path: Optional[str] = None,
    local_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Carrega e resolve a configuração efetiva.

    Política de resolução:
        - Sem `defaults_path`, usa o `defaults.yaml` empacotado
        - O arquivo local é opcional e ignorado se não existir
        - `overrides` (dict já materializado) é aplicado por último

    Args:
        defaults_path (Optional[str]): Caminho para o arquivo de configuração base.
        local_path (Optional[str]): Caminho opcional para overrides locais.
        overrides (Optional[Dict[str, Any]]): Overrides programáticos.

    Returns:
        Dict[str, Any]: Configuração final resolvida.

    Raises:
        DefaultsNotFoundError: Se o arquivo de defaults não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo não for um dicionário.
        ConfigTypeConflictError: Se ocorrer conflito estrutural durante o merge.
    """

    defaults_file = Path(defaults_path) if defaults_path is not None else PACKAGED_DEFAULTS
    effective = _load_file(defaults_file)

    if local_path is not None:
        local_file = Path(local_path)
        if local_file.exists():
            effective = deep_merge(effective, _load_file(local_file))
        else:
            logger.debug("config local ausente, ignorada: %s", local_file)

    if overrides:
        effective = deep_merge(effective, overrides)

    logger.debug("config resolvida (sha256=%s)", compute_config_hash(effective)[:12])

    return effective


def get_setting(config: Optional[Dict[str, Any]], dotted_key: str, default: Any = None) -> Any:
    """Lê uma chave pontilhada (`populate.reserve_jobs`) tolerando seções ausentes."""
    node: Any = config or {}
    for part in dotted_key.split("."):
        if not isinstance(node, dict):
            return default
        node = node.get(part, _MISSING)
        if node is _MISSING:
            return default
    return node


def configure_logging(config: Optional[Dict[str, Any]]) -> None:
    """Aplica `logging.level` ao logger raiz do pacote (`tierflow`)."""
    level_name = str(get_setting(config, "logging.level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise InvalidConfigRootTypeError(
            f"Nível de logging inválido: {level_name}",
            details={"logging.level": level_name},
        )
    logging.getLogger("tierflow").setLevel(level)
