"""Protocols para extensibilidade da biblioteca.

Define interfaces que permitem implementações customizadas de:
- Store: Armazenamento limitado com expiração por entrada
- CacheMetrics: Coleta de métricas
- KeyBuilder: Geração de chaves para o decorator
"""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, Protocol, TypeAlias

TTL: TypeAlias = int | float | timedelta

# loader(fail_count) -> (valor, ttl); falhas são sinalizadas com exceção
Loader: TypeAlias = Callable[[int], tuple[Any, TTL]]
AsyncLoader: TypeAlias = Callable[[int], Awaitable[tuple[Any, TTL]]]


class Store(Protocol):
    """Protocol para o armazenamento por trás do coordenador.

    Implementações devem ser thread-safe. O coordenador nunca
    inspeciona as entradas, apenas presença/ausência.
    Operações devem ser rápidas e não bloquear em I/O remoto:
    ``set_with_expiry`` roda sob o lock do coordenador.

    Example:
        ```python
        class DictStore:
            def get(self, key: str) -> Any:
                try:
                    return self._data[key]
                except KeyError:
                    raise KeyNotFoundError("miss", key=key) from None
            ...
        ```
    """

    def get(self, key: str) -> Any:
        """Busca valor.

        Raises:
            KeyNotFoundError: Se a chave não existir ou tiver expirado
        """
        ...

    def set_with_expiry(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Armazena valor com tempo de vida em segundos.

        O coordenador chama este método com seu lock interno adquirido, para
        que a escrita e a checagem de invalidação sejam atômicas. A escrita
        deve ser rápida (um store lento atrasa todas as chaves) e não pode
        chamar de volta o coordenador.
        """
        ...

    def remove(self, key: str) -> bool:
        """Remove a chave. Retorna True se havia entrada."""
        ...

    def has(self, key: str) -> bool:
        """Verifica existência (entradas expiradas não contam)."""
        ...


class CacheMetrics(Protocol):
    """Protocol para coleta de métricas do coordenador.

    Example:
        ```python
        class PrometheusMetrics:
            def record_hit(self, key: str, latency: float) -> None:
                cache_hits_total.labels(key=key).inc()
        ```
    """

    def record_hit(self, key: str, latency: float) -> None:
        """Registra cache hit.

        Args:
            key: Chave do cache
            latency: Latência da consulta em segundos
        """
        ...

    def record_miss(self, key: str, latency: float) -> None:
        """Registra cache miss (uma vez por chamada)."""
        ...

    def record_load(self, key: str, duration: float) -> None:
        """Registra carga bem-sucedida.

        Args:
            key: Chave do cache
            duration: Duração da chamada ao loader em segundos
        """
        ...

    def record_load_failure(self, key: str, error: Exception) -> None:
        """Registra falha do loader."""
        ...

    def record_discard(self, key: str) -> None:
        """Registra valor descartado por invalidação durante a carga."""
        ...

    def record_error(self, key: str, error: Exception) -> None:
        """Registra erro do store."""
        ...


class KeyBuilder(Protocol):
    """Protocol para construtores de chaves de cache.

    Example:
        ```python
        class MyKeyBuilder:
            def build_key(self, func, args, kwargs) -> str:
                return f"my-prefix:{func.__name__}:{hash(args)}"
        ```
    """

    def build_key(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> str:
        """Constrói chave de cache.

        Args:
            func: Função decorada
            args: Argumentos posicionais
            kwargs: Argumentos nomeados

        Returns:
            Chave de cache como string
        """
        ...
