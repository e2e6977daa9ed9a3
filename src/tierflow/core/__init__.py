# src/tierflow/core/__init__.py
"""
Core do tierflow.

Este pacote reúne a implementação canônica dos três motores do tierflow:

    - grafo de dependências do schema (descoberta de chaves estrangeiras
      e cálculo de níveis hierárquicos)
    - mutações em cascata (insert validado, delete referencialmente correto)
    - auto-população distribuída (linhas faltantes → jobs reservados,
      opcionalmente despachados a um cluster com staging de cache)

Componentes principais:
    - config     → resolução de configuração (merge, validação estrutural, hashing)
    - connection → máquina de estados de sessão/transação
    - schema     → catálogo, registry, grafo e `Schema`
    - relation   → relações, relvars e cascata
    - populate   → jobs, contexto, estratégias e engine
    - execution  → scheduler de cluster e estratégias distribuídas
    - backup     → persistência joblib do conteúdo de tabelas

Limites explícitos:
    - Não depende de UI, notebooks ou do serviço de cluster real
"""
