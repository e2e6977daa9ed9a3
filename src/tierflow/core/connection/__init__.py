# src/tierflow/core/connection/__init__.py
"""
Conexão do tierflow.

Máquina de estados de sessão e transação sobre uma engine do SQLAlchemy:

    Disconnected → Connected → InTransaction → Connected

Limites explícitos:
    - O transporte (drivers DBAPI, pool) é do SQLAlchemy
"""

from .connection import Connection

__all__ = ["Connection"]
