"""Políticas de amortecimento de falhas para loaders.

O coordenador apenas repassa ``fail_count`` ao loader; a decisão de
parar de consultar a fonte após falhas repetidas é do chamador. Este
módulo empacota o padrão mais comum: após N falhas consecutivas,
servir um placeholder barato com TTL curto.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .exceptions import CacheConfigError
from .protocols import AsyncLoader, Loader

logger = logging.getLogger(__name__)

DEFAULT_MAX_FAILURES = 3
DEFAULT_PLACEHOLDER_TTL_SECONDS = 10.0


def damped_loader(
    fetch: Callable[[], Any] | Callable[[], Awaitable[Any]],
    *,
    ttl_seconds: float,
    max_failures: int | None = DEFAULT_MAX_FAILURES,
    placeholder: Any = None,
    placeholder_ttl_seconds: float = DEFAULT_PLACEHOLDER_TTL_SECONDS,
) -> Loader | AsyncLoader:
    """Cria loader que serve um placeholder após falhas consecutivas.

    Enquanto ``fail_count < max_failures`` o loader chama ``fetch()`` e
    retorna ``(valor, ttl_seconds)``; exceções de ``fetch`` propagam e
    contam como falha. A partir de ``max_failures`` falhas retorna
    ``(placeholder, placeholder_ttl_seconds)`` sem tocar a fonte, o que
    também zera o contador (a carga teve sucesso).

    Args:
        fetch: Função (sync ou async) sem argumentos que busca o valor
        ttl_seconds: TTL do valor real
        max_failures: Falhas consecutivas antes de usar o placeholder (None desativa)
        placeholder: Valor servido no lugar do real
        placeholder_ttl_seconds: TTL do placeholder

    Returns:
        Loader compatível com ``LoadCoordinator.get`` (ou ``get_async``
        quando ``fetch`` é coroutine function)

    Example:
        ```python
        loader = damped_loader(lambda: query_db("key1"), ttl_seconds=300, placeholder="")
        value = cache.get("key1", loader)
        ```
    """
    if max_failures is not None and max_failures < 1:
        raise CacheConfigError(f"max_failures must be >= 1 or None, got {max_failures}")

    def use_placeholder(fail_count: int) -> bool:
        if max_failures is not None and fail_count >= max_failures:
            logger.debug(f"{fail_count} falhas consecutivas, servindo placeholder por {placeholder_ttl_seconds}s")
            return True
        return False

    if inspect.iscoroutinefunction(fetch):

        async def async_loader(fail_count: int) -> tuple[Any, float]:
            if use_placeholder(fail_count):
                return placeholder, placeholder_ttl_seconds
            return await fetch(), ttl_seconds

        return async_loader

    def loader(fail_count: int) -> tuple[Any, float]:
        if use_placeholder(fail_count):
            return placeholder, placeholder_ttl_seconds
        return fetch(), ttl_seconds

    return loader
