"""Store LRU com expiração por entrada, baseado em cachetools."""

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Any, NamedTuple

from cachetools import TLRUCache

from .config import validate_capacity
from .exceptions import CacheKeyError, KeyNotFoundError

logger = logging.getLogger(__name__)


class _Entry(NamedTuple):
    """Valor armazenado junto com seu TTL em segundos."""

    value: Any
    ttl_seconds: float


def _time_to_use(_key: str, entry: _Entry, now: float) -> float:
    """Calcula instante de expiração de uma entrada."""
    return now + entry.ttl_seconds


class LRUStore:
    """Store limitado com política LRU e TTL por entrada.

    Usa ``cachetools.TLRUCache``: entradas expiradas são descartadas
    primeiro e, sob pressão de capacidade, sai a menos usada recentemente.
    O TLRUCache não é thread-safe, então todo acesso passa por um Lock.

    Attributes:
        capacity: Número máximo de entradas
    """

    def __init__(self, capacity: int, timer: Callable[[], float] = time.monotonic) -> None:
        """Inicializa o store.

        Args:
            capacity: Número máximo de entradas (>= 1)
            timer: Relógio usado para expiração (útil em testes)

        Raises:
            CacheConfigError: Se capacity for inválida
        """
        validate_capacity(capacity)
        self._capacity = capacity
        self._cache: TLRUCache = TLRUCache(maxsize=capacity, ttu=_time_to_use, timer=timer)
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        """Número máximo de entradas."""
        return self._capacity

    def get(self, key: str) -> Any:
        """Busca valor.

        Raises:
            KeyNotFoundError: Se a chave não existir ou tiver expirado
        """
        with self._lock:
            try:
                entry = self._cache[key]
            except KeyError:
                raise KeyNotFoundError(f"Chave não encontrada: {key}", key=key) from None
        return entry.value

    def set_with_expiry(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Armazena valor com TTL.

        TTL <= 0 significa expiração imediata: nada é retido e qualquer
        entrada anterior da chave é removida.
        """
        if not key:
            raise CacheKeyError("Chave não pode ser vazia", key=key)

        with self._lock:
            if ttl_seconds <= 0:
                self._cache.pop(key, None)
                logger.debug(f"TTL {ttl_seconds}s expira imediatamente a chave: {key}")
                return
            self._cache[key] = _Entry(value, ttl_seconds)
        logger.debug(f"Store set para chave: {key}, TTL: {ttl_seconds}s")

    def remove(self, key: str) -> bool:
        """Remove a chave. Retorna True se havia entrada válida."""
        with self._lock:
            return self._cache.pop(key, None) is not None

    def has(self, key: str) -> bool:
        """Verifica existência (entradas expiradas não contam)."""
        with self._lock:
            return key in self._cache

    def clear(self) -> None:
        """Remove todas as entradas."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)
