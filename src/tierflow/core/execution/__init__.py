"""tierflow — Execution (core).

Estratégias distribuídas de população sobre um scheduler de cluster:
 - scheduler: contrato ClusterScheduler/ClusterJob e InProcessScheduler
 - direct: um job por chave
 - cached: staging de cache em disco com jobs por grupo de granularidade
"""

from .cached import CacheRequestTable, CacheStagingStrategy, cache_flag, directory_size  # noqa: F401
from .direct import DirectSubmitStrategy  # noqa: F401
from .scheduler import ClusterJob, ClusterScheduler, InProcessJob, InProcessScheduler, SchedulerError  # noqa: F401
