"""Coordenação de cargas por chave (proteção contra cache stampede).

Garante que, para cada chave, no máximo uma carga rode contra a fonte
de dados; chamadas concorrentes para a mesma chave ausente aguardam essa
carga e relêem o store. Uma chave invalidada durante a carga nunca é
sobrescrita pelo valor antigo.
"""

import asyncio
import contextlib
import inspect
import logging
import threading
import time
from collections.abc import Iterator
from datetime import timedelta
from enum import Enum
from functools import partial
from typing import Any

from .config import CacheConfig, validate_wait_timeout
from .exceptions import CacheKeyError, CacheStoreError, CacheWaitTimeoutError, KeyNotFoundError
from .metrics import NoOpMetrics
from .protocols import AsyncLoader, CacheMetrics, Loader, Store
from .store import LRUStore

logger = logging.getLogger(__name__)

ASYNC_LOADER_ERROR = "Loader assíncrono requer get_async"


class LoadState(Enum):
    """Estado de uma carga em andamento."""

    LOADING = "loading"
    NEED_RELOAD = "need_reload"


class _LoadToken:
    """Direito exclusivo de carregar uma chave.

    Vive no registro apenas durante uma tentativa de carga. Waiters
    síncronos esperam ``done``; waiters assíncronos registram uma future
    no loop em que rodam.
    """

    __slots__ = ("state", "done", "async_waiters")

    def __init__(self) -> None:
        self.state = LoadState.LOADING
        self.done = threading.Event()
        self.async_waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Future[None]]] = []


def _validate_key(key: str) -> None:
    if not isinstance(key, str) or not key:
        raise CacheKeyError("Chave não pode ser vazia", key=key if isinstance(key, str) else None)


def _unpack(result: Any) -> tuple[Any, float]:
    """Extrai (valor, ttl em segundos) do retorno do loader."""
    value, ttl = result
    if isinstance(ttl, timedelta):
        return value, ttl.total_seconds()
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise TypeError(f"TTL do loader deve ser int, float ou timedelta, recebido {type(ttl).__name__}")
    return value, float(ttl)


def _wake(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


def _close_awaitable(awaitable: Any) -> None:
    """Fecha coroutine que nunca será aguardada."""
    close = getattr(awaitable, "close", None)
    if close is not None:
        close()


class LoadCoordinator:
    """Cache com coalescência de cargas sobre um ``Store``.

    Mantém dois mapas protegidos por um único lock: tokens de carga por
    chave e falhas consecutivas por chave. O lock nunca é mantido durante
    a chamada ao loader nem durante esperas.

    O loader recebe o número de falhas consecutivas da chave e retorna
    ``(valor, ttl)``; falhas são sinalizadas levantando exceção. O próprio
    loader decide como amortecer falhas repetidas (ver ``damped_loader``).

    Example:
        ```python
        cache = create_cache(100)

        def load(fail_count: int) -> tuple[Any, float]:
            if fail_count >= 3:
                return "", 10  # placeholder barato por 10s
            return query_db("key1"), 300

        value = cache.get("key1", load)
        ```
    """

    def __init__(
        self,
        store: Store,
        metrics: CacheMetrics | None = None,
        wait_timeout: float | None = None,
    ) -> None:
        """Inicializa o coordenador.

        Args:
            store: Store thread-safe por trás do cache
            metrics: Coletor de métricas (default: NoOpMetrics)
            wait_timeout: Tempo máximo padrão (s) de espera por carga alheia; None = sem limite
        """
        validate_wait_timeout(wait_timeout)
        self._store = store
        self._metrics: CacheMetrics = metrics or NoOpMetrics()
        self._wait_timeout = wait_timeout
        self._loading: dict[str, _LoadToken] = {}
        self._fail_counts: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def store(self) -> Store:
        """Store subjacente."""
        return self._store

    # ========== Operações públicas ==========

    def get(self, key: str, loader: Loader, timeout: float | None = None) -> Any:
        """Retorna o valor da chave, carregando-o no máximo uma vez entre chamadas concorrentes.

        Args:
            key: Chave do cache
            loader: ``loader(fail_count) -> (valor, ttl)``
            timeout: Tempo máximo de espera por carga de outro chamador

        Returns:
            Valor do store ou recém-carregado

        Raises:
            CacheKeyError: Se a chave for vazia
            CacheStoreError: Se o store falhar por motivo diferente de miss
            CacheWaitTimeoutError: Se a espera exceder o timeout
            Exception: A exceção do loader, apenas para o chamador dono da carga
        """
        _validate_key(key)
        if inspect.iscoroutinefunction(loader):
            raise TypeError(ASYNC_LOADER_ERROR)

        deadline = self._deadline(timeout)
        started: float | None = time.perf_counter()
        while True:
            found, value = self._probe(key, started)
            if found:
                return value
            started = None

            token, is_owner = self._acquire(key)
            if is_owner:
                break
            logger.debug(f"Aguardando carga em andamento para: {key}")
            self._wait(key, token, deadline)

        try:
            found, value = self._probe(key, None)
            if found:
                return value

            fail_count = self.fail_count(key)
            load_started = time.perf_counter()
            try:
                result = loader(fail_count)
                if not inspect.isawaitable(result):
                    value, ttl_seconds = _unpack(result)
            except Exception as e:
                self._on_load_failure(key, e)
                raise
            if inspect.isawaitable(result):
                # callable que devolve coroutine: não conta como falha de carga
                _close_awaitable(result)
                raise TypeError(ASYNC_LOADER_ERROR)
            self._on_load_success(key, token, value, ttl_seconds, time.perf_counter() - load_started)
            return value
        finally:
            self._release(key, token)

    async def get_async(self, key: str, loader: Loader | AsyncLoader, timeout: float | None = None) -> Any:
        """Versão assíncrona de ``get``.

        Loaders ``async`` são aguardados; loaders síncronos rodam no executor
        padrão do loop para não bloqueá-lo. Chamadores sync e async
        compartilham o mesmo registro de cargas.

        Se o dono for cancelado enquanto um loader síncrono roda no executor,
        a carga segue até o fim na thread: o resultado é gravado e o token só
        é liberado quando o loader retorna.
        """
        _validate_key(key)
        loop = asyncio.get_running_loop()

        deadline = self._deadline(timeout)
        started: float | None = time.perf_counter()
        while True:
            found, value = self._probe(key, started)
            if found:
                return value
            started = None

            token, waiter = self._acquire_async(key, loop)
            if waiter is None:
                break
            logger.debug(f"Aguardando carga em andamento para: {key}")
            await self._wait_async(key, waiter, deadline)

        detached = False
        try:
            found, value = self._probe(key, None)
            if found:
                return value

            fail_count = self.fail_count(key)
            load_started = time.perf_counter()
            try:
                if inspect.iscoroutinefunction(loader):
                    result = await loader(fail_count)
                else:
                    fill = loop.run_in_executor(None, loader, fail_count)
                    try:
                        result = await asyncio.shield(fill)
                    except asyncio.CancelledError:
                        # a thread do loader segue rodando: o token fica com ela
                        detached = True
                        fill.add_done_callback(partial(self._finish_detached, key, token, load_started))
                        logger.debug(f"Dono cancelado, carga segue no executor: {key}")
                        raise
                    if inspect.isawaitable(result):
                        result = await result
                value, ttl_seconds = _unpack(result)
            except Exception as e:
                self._on_load_failure(key, e)
                raise
            self._on_load_success(key, token, value, ttl_seconds, time.perf_counter() - load_started)
            return value
        finally:
            if not detached:
                self._release(key, token)

    def has(self, key: str) -> bool:
        """Verifica se a chave está no store. Cargas em andamento não contam."""
        _validate_key(key)
        with self._store_guard(key, "has"):
            return self._store.has(key)

    def delete(self, key: str) -> None:
        """Invalida a chave.

        Marca uma carga em andamento como ``NEED_RELOAD`` (seu resultado será
        descartado) e remove a chave do store. A marcação vem antes da remoção:
        um commit concorrente ou é descartado ou é removido logo em seguida.
        """
        _validate_key(key)
        with self._lock:
            token = self._loading.get(key)
            if token is not None:
                token.state = LoadState.NEED_RELOAD
        if token is not None:
            logger.debug(f"Carga em andamento marcada para recarga: {key}")

        with self._store_guard(key, "remove"):
            self._store.remove(key)
        logger.debug(f"Cache delete para chave: {key}")

    # ========== Introspecção ==========

    def load_state(self, key: str) -> LoadState | None:
        """Estado da carga em andamento da chave (None se não houver)."""
        with self._lock:
            token = self._loading.get(key)
            return token.state if token is not None else None

    def fail_count(self, key: str) -> int:
        """Falhas consecutivas de carga da chave desde o último sucesso."""
        with self._lock:
            return self._fail_counts.get(key, 0)

    def clear_fail_count(self, key: str) -> None:
        """Zera o histórico de falhas da chave."""
        with self._lock:
            self._fail_counts.pop(key, None)

    def pending_keys(self) -> list[str]:
        """Chaves com carga em andamento."""
        with self._lock:
            return list(self._loading)

    # ========== Token de carga ==========

    def _acquire(self, key: str) -> tuple[_LoadToken, bool]:
        """Tenta adquirir o token de carga. Retorna (token, é_dono)."""
        with self._lock:
            token = self._loading.get(key)
            if token is not None:
                return token, False
            token = _LoadToken()
            self._loading[key] = token
        logger.debug(f"Token de carga adquirido para: {key}")
        return token, True

    def _acquire_async(
        self, key: str, loop: asyncio.AbstractEventLoop
    ) -> tuple[_LoadToken, asyncio.Future[None] | None]:
        """Como ``_acquire``, mas registra uma future para o waiter assíncrono."""
        with self._lock:
            token = self._loading.get(key)
            if token is not None:
                future: asyncio.Future[None] = loop.create_future()
                token.async_waiters.append((loop, future))
                return token, future
            token = _LoadToken()
            self._loading[key] = token
        logger.debug(f"Token de carga adquirido para: {key}")
        return token, None

    def _release(self, key: str, token: _LoadToken) -> None:
        """Libera o token e acorda todos os waiters."""
        with self._lock:
            if self._loading.get(key) is token:
                del self._loading[key]
            waiters = token.async_waiters
            token.async_waiters = []
        token.done.set()

        for loop, future in waiters:
            # loop do waiter já encerrado
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(_wake, future)

    def _deadline(self, timeout: float | None) -> float | None:
        if timeout is None:
            timeout = self._wait_timeout
        validate_wait_timeout(timeout)
        return None if timeout is None else time.monotonic() + timeout

    def _remaining(self, key: str, deadline: float | None) -> float | None:
        if deadline is None:
            return None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise CacheWaitTimeoutError(f"Tempo de espera excedido para chave: {key}", key=key)
        return remaining

    def _wait(self, key: str, token: _LoadToken, deadline: float | None) -> None:
        if not token.done.wait(self._remaining(key, deadline)):
            raise CacheWaitTimeoutError(f"Tempo de espera excedido para chave: {key}", key=key)

    async def _wait_async(self, key: str, waiter: asyncio.Future[None], deadline: float | None) -> None:
        remaining = self._remaining(key, deadline)
        if remaining is None:
            await waiter
            return
        try:
            await asyncio.wait_for(waiter, remaining)
        except asyncio.TimeoutError:
            raise CacheWaitTimeoutError(f"Tempo de espera excedido para chave: {key}", key=key) from None

    # ========== Store e resultado da carga ==========

    def _probe(self, key: str, started: float | None) -> tuple[bool, Any]:
        """Consulta o store. Registra hit/miss apenas quando ``started`` é informado."""
        try:
            with self._store_guard(key, "get"):
                value = self._store.get(key)
        except KeyNotFoundError:
            if started is not None:
                self._emit("record_miss", key, time.perf_counter() - started)
                logger.debug(f"Cache miss: {key}")
            return False, None

        if started is not None:
            self._emit("record_hit", key, time.perf_counter() - started)
            logger.debug(f"Cache hit: {key}")
        return True, value

    @contextlib.contextmanager
    def _store_guard(self, key: str, operation: str) -> Iterator[None]:
        """Converte falhas do store (exceto miss) em ``CacheStoreError``."""
        try:
            yield
        except KeyNotFoundError:
            raise
        except CacheStoreError as e:
            self._emit("record_error", key, e)
            raise
        except Exception as e:
            self._emit("record_error", key, e)
            raise CacheStoreError(f"Falha do store em {operation} para chave {key}: {e}", key=key) from e

    def _on_load_failure(self, key: str, error: Exception) -> None:
        with self._lock:
            count = self._fail_counts.get(key, 0) + 1
            self._fail_counts[key] = count
        logger.warning(f"Falha ao carregar chave {key} (falhas consecutivas: {count}): {error}")
        self._emit("record_load_failure", key, error)

    def _on_load_success(self, key: str, token: _LoadToken, value: Any, ttl_seconds: float, duration: float) -> None:
        self._emit("record_load", key, duration)

        write_error: Exception | None = None
        # Verificação de estado e escrita na mesma seção crítica que delete()
        with self._lock:
            self._fail_counts.pop(key, None)
            discarded = token.state is LoadState.NEED_RELOAD
            if not discarded:
                try:
                    self._store.set_with_expiry(key, value, ttl_seconds)
                except Exception as e:
                    write_error = e

        if discarded:
            logger.debug(f"Chave invalidada durante a carga, valor descartado: {key}")
            self._emit("record_discard", key)
        elif write_error is not None:
            logger.warning(f"Erro ao salvar chave {key} no store: {write_error}")
            self._emit("record_error", key, write_error)
        else:
            logger.debug(f"Carga concluída para: {key}, TTL: {ttl_seconds}s")

    def _finish_detached(self, key: str, token: _LoadToken, load_started: float, fill: asyncio.Future[Any]) -> None:
        """Conclui no loop a carga cujo dono foi cancelado.

        Roda como callback da future do executor (ou do awaitable devolvido
        pelo loader). O token só é liberado quando a carga termina, então
        nenhum outro chamador inicia uma segunda carga da mesma chave.
        """
        release = True
        try:
            if fill.cancelled():
                return
            error = fill.exception()
            if error is not None:
                if isinstance(error, Exception):
                    self._on_load_failure(key, error)
                return

            result = fill.result()
            if inspect.isawaitable(result):
                pending = asyncio.ensure_future(result, loop=fill.get_loop())
                pending.add_done_callback(partial(self._finish_detached, key, token, load_started))
                release = False
                return

            try:
                value, ttl_seconds = _unpack(result)
            except Exception as e:
                self._on_load_failure(key, e)
                return
            self._on_load_success(key, token, value, ttl_seconds, time.perf_counter() - load_started)
        finally:
            if release:
                self._release(key, token)

    def _emit(self, method: str, *args: Any) -> None:
        """Encaminha evento ao coletor de métricas sem deixar erros vazarem."""
        try:
            getattr(self._metrics, method)(*args)
        except Exception as e:
            logger.warning(f"Erro no coletor de métricas em {method}: {e}")


def create_cache(
    capacity: int | None = None,
    *,
    metrics: CacheMetrics | None = None,
    config: CacheConfig | None = None,
) -> LoadCoordinator:
    """Cria coordenador sobre um ``LRUStore``.

    Args:
        capacity: Capacidade do store (default: ``config.capacity``)
        metrics: Coletor de métricas (default: NoOpMetrics)
        config: Configuração (default: ``CacheConfig()``)

    Returns:
        LoadCoordinator pronto para uso
    """
    config = config or CacheConfig()
    store = LRUStore(capacity if capacity is not None else config.capacity)
    logger.debug(f"Criado cache com capacidade {store.capacity}")
    return LoadCoordinator(store, metrics=metrics, wait_timeout=config.wait_timeout)
