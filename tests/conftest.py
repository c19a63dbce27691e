"""Configuração de fixtures para testes."""

from collections.abc import Iterator

import pytest

from stampede_cache import decorator as decorator_module
from stampede_cache.coordinator import LoadCoordinator
from stampede_cache.metrics import InMemoryMetrics
from stampede_cache.store import LRUStore


class FakeClock:
    """Relógio controlável para testes de expiração."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Relógio falso para o store."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> LRUStore:
    """Store com capacidade para 10 entradas e relógio falso."""
    return LRUStore(10, timer=clock)


@pytest.fixture
def metrics() -> InMemoryMetrics:
    """Coletor de métricas em memória."""
    return InMemoryMetrics()


@pytest.fixture
def cache(store: LRUStore, metrics: InMemoryMetrics) -> LoadCoordinator:
    """Coordenador sobre o store de teste."""
    return LoadCoordinator(store, metrics=metrics)


@pytest.fixture(autouse=True)
def reset_shared_caches() -> Iterator[None]:
    """Isola os caches compartilhados do decorator entre testes."""
    decorator_module._caches.clear()
    yield
    decorator_module._caches.clear()
