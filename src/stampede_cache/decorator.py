"""Decorator @cacheable sobre o coordenador de cargas."""

import inspect
import logging
from collections.abc import Callable
from functools import wraps
from threading import Lock
from typing import Any, overload

from .config import CacheConfig
from .coordinator import LoadCoordinator, create_cache
from .key_builder import DefaultKeyBuilder
from .policies import DEFAULT_PLACEHOLDER_TTL_SECONDS, damped_loader
from .protocols import AsyncLoader, KeyBuilder, Loader

logger = logging.getLogger(__name__)

DEFAULT_CACHE_NAME = "default"
DEFAULT_KEY_PREFIX = "cache"


class CacheableWrapper:
    """Wrapper para funções decoradas com @cacheable.

    Funções síncronas passam por ``LoadCoordinator.get`` e coroutine
    functions por ``get_async``. Chamadas concorrentes com os mesmos
    argumentos executam a função uma única vez.

    Implementa o descriptor protocol para suportar métodos de instância.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        cache: LoadCoordinator,
        key_builder: KeyBuilder,
        ttl_seconds: float,
        max_failures: int | None = None,
        placeholder: Any = None,
        placeholder_ttl_seconds: float = DEFAULT_PLACEHOLDER_TTL_SECONDS,
    ) -> None:
        self._func = func
        self._cache = cache
        self._key_builder = key_builder
        self._ttl_seconds = ttl_seconds
        self._max_failures = max_failures
        self._placeholder = placeholder
        self._placeholder_ttl_seconds = placeholder_ttl_seconds
        self._is_async = inspect.iscoroutinefunction(func)

        # Preserva metadados da função original
        wraps(func)(self)

    @property
    def cache(self) -> LoadCoordinator:
        """Coordenador usado por esta função."""
        return self._cache

    def __get__(self, obj: Any, _objtype: type | None = None) -> "CacheableWrapper | BoundCacheableMethod":
        if obj is None:
            return self
        return BoundCacheableMethod(self, obj)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self._is_async:
            return self._call_async(*args, **kwargs)
        return self._call_sync(*args, **kwargs)

    def cache_key(self, *args: Any, **kwargs: Any) -> str:
        """Chave de cache usada para os argumentos informados."""
        return self._key_builder.build_key(self._func, args, kwargs)

    def _call_sync(self, *args: Any, **kwargs: Any) -> Any:
        func = self._func

        def fetch() -> Any:
            return func(*args, **kwargs)

        return self._cache.get(self.cache_key(*args, **kwargs), self._build_loader(fetch))

    async def _call_async(self, *args: Any, **kwargs: Any) -> Any:
        func = self._func

        async def fetch() -> Any:
            return await func(*args, **kwargs)

        return await self._cache.get_async(self.cache_key(*args, **kwargs), self._build_loader(fetch))

    def _build_loader(self, fetch: Callable[[], Any]) -> Loader | AsyncLoader:
        return damped_loader(
            fetch,
            ttl_seconds=self._ttl_seconds,
            max_failures=self._max_failures,
            placeholder=self._placeholder,
            placeholder_ttl_seconds=self._placeholder_ttl_seconds,
        )

    def invalidate(self, *args: Any, **kwargs: Any) -> None:
        """Invalida a entrada de cache para os argumentos especificados."""
        key = self.cache_key(*args, **kwargs)
        self._cache.delete(key)
        logger.debug(f"Invalidada chave: {key}")


class BoundCacheableMethod:
    """Wrapper para métodos bound (com self/cls)."""

    def __init__(self, wrapper: CacheableWrapper, instance: Any) -> None:
        self._wrapper = wrapper
        self._instance = instance

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._wrapper(self._instance, *args, **kwargs)

    def invalidate(self, *args: Any, **kwargs: Any) -> None:
        self._wrapper.invalidate(self._instance, *args, **kwargs)


# Caches compartilhados por nome, criados sob demanda
_caches: dict[str, LoadCoordinator] = {}
_caches_lock = Lock()


def get_shared_cache(name: str = DEFAULT_CACHE_NAME) -> LoadCoordinator:
    """Obtém ou cria o cache compartilhado ``name`` (thread-safe).

    Caches novos usam ``CacheConfig.from_env()``.
    """
    with _caches_lock:
        cache = _caches.get(name)
        if cache is None:
            cache = create_cache(config=CacheConfig.from_env())
            _caches[name] = cache
            logger.debug(f"Criado cache compartilhado: {name}")
        return cache


@overload
def cacheable(func: Callable[..., Any]) -> CacheableWrapper: ...


@overload
def cacheable(
    *,
    cache: LoadCoordinator | None = None,
    name: str = DEFAULT_CACHE_NAME,
    ttl_seconds: float | None = None,
    key_prefix: str = DEFAULT_KEY_PREFIX,
    key_builder: KeyBuilder | None = None,
    max_failures: int | None = None,
    placeholder: Any = None,
    placeholder_ttl_seconds: float = DEFAULT_PLACEHOLDER_TTL_SECONDS,
) -> Callable[[Callable[..., Any]], CacheableWrapper]: ...


def cacheable(
    func: Callable[..., Any] | None = None,
    *,
    cache: LoadCoordinator | None = None,
    name: str = DEFAULT_CACHE_NAME,
    ttl_seconds: float | None = None,
    key_prefix: str = DEFAULT_KEY_PREFIX,
    key_builder: KeyBuilder | None = None,
    max_failures: int | None = None,
    placeholder: Any = None,
    placeholder_ttl_seconds: float = DEFAULT_PLACEHOLDER_TTL_SECONDS,
) -> CacheableWrapper | Callable[[Callable[..., Any]], CacheableWrapper]:
    """Decorator para cache com coalescência de cargas.

    Args:
        func: Função a decorar (quando usado sem parênteses)
        cache: Coordenador a usar (default: cache compartilhado ``name``)
        name: Nome do cache compartilhado
        ttl_seconds: TTL dos resultados (default: ``CacheConfig.from_env().default_ttl_seconds``)
        key_prefix: Prefixo para chaves de cache
        key_builder: Construtor de chaves customizado
        max_failures: Falhas consecutivas antes de servir ``placeholder`` (None desativa)
        placeholder: Valor servido após ``max_failures`` falhas
        placeholder_ttl_seconds: TTL do placeholder

    Example:
        ```python
        @cacheable(ttl_seconds=300, max_failures=3, placeholder={})
        def get_user(user_id: int) -> dict:
            return db.query(user_id)

        @cacheable
        async def get_user_async(user_id: int) -> dict:
            return await db.query(user_id)

        get_user.invalidate(123)
        ```
    """

    def decorator(fn: Callable[..., Any]) -> CacheableWrapper:
        actual_cache = cache or get_shared_cache(name)
        actual_ttl = ttl_seconds if ttl_seconds is not None else CacheConfig.from_env().default_ttl_seconds

        return CacheableWrapper(
            func=fn,
            cache=actual_cache,
            key_builder=key_builder or DefaultKeyBuilder(prefix=key_prefix),
            ttl_seconds=actual_ttl,
            max_failures=max_failures,
            placeholder=placeholder,
            placeholder_ttl_seconds=placeholder_ttl_seconds,
        )

    if func is not None:
        # Usado sem parênteses: @cacheable
        return decorator(func)

    # Usado com parênteses: @cacheable(...)
    return decorator
