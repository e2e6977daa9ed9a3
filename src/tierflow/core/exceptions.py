"""
tierflow — Canonical Exceptions (v1)

Este módulo define as exceções tipadas do tierflow.

Objetivo:
- Permitir que schema, relvars, conexão e engine de população levantem
  exceções semânticas tipadas
- Facilitar o mapeamento determinístico para ErrorPayload
- Evitar ValueError/RuntimeError genéricos em guardrails críticos

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`.
- Mensagens são curtas e humanas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(eq=False)
class TierflowException(Exception):
    """Base class para exceções internas do tierflow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Schema / catálogo
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class SchemaLoadError(TierflowException):
    """Catálogo malformado ou não classificável (fatal, aborta o reload)."""


@dataclass(eq=False)
class UnknownTableError(TierflowException):
    """Tabela não registrada no schema carregado."""


@dataclass(eq=False)
class InvalidNameError(TierflowException):
    """Nome não conforme à convenção underscore_compound_words / CamelCase."""


# ---------------------------------------------------------------------------
# Conexão / transações
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class DuplicateKeyError(TierflowException):
    """Violação de unicidade reportada pelo banco (recuperável)."""


@dataclass(eq=False)
class TransactionLostError(TierflowException):
    """Conexão perdida durante uma transação sob política estrita."""


@dataclass(eq=False)
class TransactionStateError(TierflowException):
    """Operação de transação inválida para o estado atual da conexão."""


# ---------------------------------------------------------------------------
# Validação de insert
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class InsertValidationError(TierflowException):
    """Base para falhas de validação de tuplas antes do insert."""


@dataclass(eq=False)
class UnknownFieldError(InsertValidationError):
    """Campo da tupla não declarado como coluna da tabela."""


@dataclass(eq=False)
class TypeMismatchError(InsertValidationError):
    """Valor incompatível com a categoria da coluna (string/blob/numérico)."""


@dataclass(eq=False)
class DecimalRangeError(InsertValidationError):
    """Valor fora da magnitude representável pela coluna decimal."""


@dataclass(eq=False)
class DecimalPrecisionError(InsertValidationError):
    """Valor perde mais precisão do que a tolerância permite no arredondamento."""


# ---------------------------------------------------------------------------
# População
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class PopulationConfigError(TierflowException):
    """Tabela alvo sem relação fonte de população (ou configuração inválida)."""
