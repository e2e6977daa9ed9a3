# src/tierflow/__init__.py
"""
tierflow — pipelines de dados científicos sobre tabelas relacionais.

O tierflow organiza dados de experimentos em tabelas com hierarquias
explícitas de chaves estrangeiras e automatiza a computação idempotente
(e opcionalmente distribuída) das linhas faltantes das tabelas derivadas.

Princípios centrais:
    - O papel de cada tabela vem do prefixo do nome (lookup, manual,
      imported, computed, job)
    - A única relação de dependência é a chave estrangeira
    - A unidade de trabalho é uma linha da tabela alvo
    - Mutações preservam integridade referencial (insert validado,
      delete em cascata em uma transação)

Arquitetura em alto nível:
    - core.config     → carregamento, merge e hashing de configuração
    - core.connection → sessão e transações sobre o SQLAlchemy
    - core.schema     → catálogo, tiers, grafo de dependências e níveis
    - core.relation   → relações, relvars, insert validado e cascata
    - core.populate   → tabela de jobs e engine de auto-população
    - core.execution  → estratégias sobre scheduler de cluster
    - core.backup     → backup e restauração de tabelas

Limites explícitos:
    - Não é um planejador de queries SQL
    - Não é uma engine genérica de workflows
    - Não implementa o serviço de cluster (apenas o contrato)
"""

from .core.connection.connection import Connection
from .core.populate.engine import AutoPopulate
from .core.populate.jobs import JobTable
from .core.relation.cascade import always_confirm, confirm_policy, interactive_confirm, never_confirm
from .core.relation.relation import Not
from .core.relation.relvar import Relvar
from .core.schema.schema import Schema

__all__ = [
    "AutoPopulate",
    "Connection",
    "JobTable",
    "Not",
    "Relvar",
    "Schema",
    "always_confirm",
    "confirm_policy",
    "interactive_confirm",
    "never_confirm",
]
