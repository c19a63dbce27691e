"""stampede-cache: Cache em memória com coalescência de cargas.

Garante no máximo uma carga concorrente por chave contra a fonte de
dados, compartilha o resultado com as chamadas que aguardam e nunca
grava um valor de uma chave invalidada durante a carga.

Uso básico:
    ```python
    from stampede_cache import create_cache

    cache = create_cache(100)

    def load(fail_count: int):
        if fail_count >= 3:
            return "", 10  # evita martelar a fonte por 10s
        return query_db("key1"), 300

    value = cache.get("key1", load)
    cache.delete("key1")
    ```

Com decorator:
    ```python
    from stampede_cache import cacheable

    @cacheable(ttl_seconds=300)
    def get_user(user_id: int) -> dict:
        return db.query(user_id)
    ```
"""

__version__ = "0.1.0"

# Configuração
from .config import CacheConfig

# Coordenador
from .coordinator import LoadCoordinator, LoadState, create_cache

# Decorator
from .decorator import CacheableWrapper, cacheable, get_shared_cache

# Exceções
from .exceptions import (
    CacheConfigError,
    CacheError,
    CacheKeyError,
    CacheStoreError,
    CacheWaitTimeoutError,
    KeyNotFoundError,
)

# Geração de chaves
from .key_builder import DefaultKeyBuilder

# Métricas
from .metrics import (
    CacheStats,
    InMemoryMetrics,
    KeyStats,
    NoOpMetrics,
    OpenTelemetryMetrics,
)

# Políticas
from .policies import damped_loader

# Protocols (para extensibilidade)
from .protocols import AsyncLoader, CacheMetrics, KeyBuilder, Loader, Store

# Store
from .store import LRUStore

__all__ = [
    # Coordenador
    "LoadCoordinator",
    "LoadState",
    "create_cache",
    # Store
    "LRUStore",
    # Configuração
    "CacheConfig",
    # Decorator
    "cacheable",
    "CacheableWrapper",
    "get_shared_cache",
    # Políticas
    "damped_loader",
    # Geração de chaves
    "DefaultKeyBuilder",
    # Métricas
    "CacheStats",
    "KeyStats",
    "NoOpMetrics",
    "InMemoryMetrics",
    "OpenTelemetryMetrics",
    # Exceções
    "CacheError",
    "CacheKeyError",
    "KeyNotFoundError",
    "CacheStoreError",
    "CacheWaitTimeoutError",
    "CacheConfigError",
    # Protocols
    "Store",
    "CacheMetrics",
    "KeyBuilder",
    "Loader",
    "AsyncLoader",
]
