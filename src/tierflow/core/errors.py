"""
tierflow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros serializáveis do tierflow.
Erros de computação por chave são artefatos de domínio: ficam registrados
na tabela de jobs e no resultado da população, devendo ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

Nenhuma decisão implícita é permitida.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .exceptions import TierflowException


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorPayload:
    """
    Payload canônico de erro do tierflow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Schema
SCHEMA_LOAD_ERROR = "SCHEMA_LOAD_ERROR"

# Insert
INSERT_VALIDATION_ERROR = "INSERT_VALIDATION_ERROR"
DUPLICATE_KEY = "DUPLICATE_KEY"

# População / execução
POPULATION_CONFIG_ERROR = "POPULATION_CONFIG_ERROR"
COMPUTE_ERROR = "COMPUTE_ERROR"

# Tamanho máximo da mensagem persistida na tabela de jobs
MAX_ERROR_MESSAGE_LENGTH = 1023


def exception_to_error(exc: BaseException) -> ErrorPayload:
    """Converte exceções em ErrorPayload (serializável, acionável).

    Regras:
    - TierflowException: já vem com message/details/hint; o nome da classe
      é usado como código estável.
    - Outras exceções: encapsular como COMPUTE_ERROR sem expor stack trace.
    """
    if isinstance(exc, TierflowException):
        return ErrorPayload(
            type=exc.__class__.__name__,
            message=str(exc) or "Erro de execução",
            details=dict(getattr(exc, "details", {}) or {}),
            hint=getattr(exc, "hint", None),
        )

    return ErrorPayload(
        type=COMPUTE_ERROR,
        message=str(exc) or exc.__class__.__name__,
        details={"exception_class": exc.__class__.__name__},
        hint="Verifique a função de computação da tabela",
    )


def job_error_message(payload: ErrorPayload) -> str:
    """Mensagem compacta para a coluna `error_message` da tabela de jobs."""
    text = f"{payload.type}: {payload.message}"
    if len(text) > MAX_ERROR_MESSAGE_LENGTH:
        text = text[: MAX_ERROR_MESSAGE_LENGTH - 3] + "..."
    return text
