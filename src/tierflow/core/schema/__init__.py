# src/tierflow/core/schema/__init__.py
"""
Schema do tierflow.

Este pacote carrega o catálogo de um banco e o transforma em um snapshot
somente leitura de tabelas, colunas e dependências.

Componentes principais:
    - naming   → underscore_compound_words ⇄ CamelCase
    - types    → Tier, EdgeKind, TableId e descritores imutáveis
    - catalog  → consultas de catálogo via Inspector do SQLAlchemy
    - loader   → classificação vetorizada de tabelas e colunas (pandas)
    - registry → registro explícito de tabelas (próprias e externas)
    - graph    → grafo de dependências e níveis hierárquicos
    - schema   → `Schema`, ponto de entrada por banco

Limites explícitos:
    - Não declara tabelas
    - Não gera código de classes de tabela
"""

