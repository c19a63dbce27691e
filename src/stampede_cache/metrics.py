"""Métricas do coordenador de carga usando OpenTelemetry."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

from opentelemetry import metrics as otel_metrics

from .config import DEFAULT_METER_NAME

logger = logging.getLogger(__name__)


class NoOpMetrics:
    """Coletor de métricas que não faz nada (default)."""

    def record_hit(self, key: str, latency: float) -> None:
        pass

    def record_miss(self, key: str, latency: float) -> None:
        pass

    def record_load(self, key: str, duration: float) -> None:
        pass

    def record_load_failure(self, key: str, error: Exception) -> None:
        pass

    def record_discard(self, key: str) -> None:
        pass

    def record_error(self, key: str, error: Exception) -> None:
        pass


@dataclass
class KeyStats:
    """Estatísticas para uma chave específica."""

    hits: int = 0
    misses: int = 0
    loads: int = 0
    load_failures: int = 0
    discards: int = 0
    errors: int = 0
    total_load_duration: float = 0.0

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        total = self.total_operations
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_load_duration_ms(self) -> float:
        return (self.total_load_duration / self.loads * 1000) if self.loads > 0 else 0.0


@dataclass
class CacheStats:
    """Estatísticas agregadas do cache."""

    hits: int = 0
    misses: int = 0
    loads: int = 0
    load_failures: int = 0
    discards: int = 0
    errors: int = 0
    hit_latencies: list[float] = field(default_factory=list)
    load_durations: list[float] = field(default_factory=list)

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        total = self.total_operations
        return self.hits / total if total > 0 else 0.0

    @property
    def coalesced_misses(self) -> int:
        """Misses atendidos sem chamar o loader (esperaram outra carga)."""
        return max(self.misses - self.loads - self.load_failures, 0)

    @property
    def avg_hit_latency_ms(self) -> float:
        if not self.hit_latencies:
            return 0.0
        return sum(self.hit_latencies) / len(self.hit_latencies) * 1000

    @property
    def avg_load_duration_ms(self) -> float:
        if not self.load_durations:
            return 0.0
        return sum(self.load_durations) / len(self.load_durations) * 1000


class OpenTelemetryMetrics:
    """Coletor de métricas usando OpenTelemetry.

    Métricas exportadas:
    - cache.hits (counter): Número de cache hits
    - cache.misses (counter): Número de cache misses
    - cache.loads (counter): Cargas bem-sucedidas
    - cache.load_failures (counter): Falhas do loader
    - cache.discards (counter): Valores descartados por invalidação durante a carga
    - cache.errors (counter): Erros do store
    - cache.latency (histogram): Latência das consultas em segundos
    - cache.load.duration (histogram): Duração das cargas em segundos

    Example:
        ```python
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry import metrics

        metrics.set_meter_provider(MeterProvider())

        cache = create_cache(1000, metrics=OpenTelemetryMetrics())
        ```
    """

    def __init__(self, meter_name: str = DEFAULT_METER_NAME) -> None:
        """Inicializa métricas OpenTelemetry.

        Args:
            meter_name: Nome do meter para agrupar métricas
        """
        meter = otel_metrics.get_meter(meter_name)

        # Counters
        self._hits_counter = meter.create_counter(
            "cache.hits",
            description="Número de cache hits",
            unit="1",
        )
        self._misses_counter = meter.create_counter(
            "cache.misses",
            description="Número de cache misses",
            unit="1",
        )
        self._loads_counter = meter.create_counter(
            "cache.loads",
            description="Número de cargas bem-sucedidas",
            unit="1",
        )
        self._load_failures_counter = meter.create_counter(
            "cache.load_failures",
            description="Número de falhas do loader",
            unit="1",
        )
        self._discards_counter = meter.create_counter(
            "cache.discards",
            description="Valores descartados por invalidação durante a carga",
            unit="1",
        )
        self._errors_counter = meter.create_counter(
            "cache.errors",
            description="Número de erros do store",
            unit="1",
        )

        # Histograms
        self._latency_histogram = meter.create_histogram(
            "cache.latency",
            description="Latência das consultas ao cache",
            unit="s",
        )
        self._load_duration_histogram = meter.create_histogram(
            "cache.load.duration",
            description="Duração das chamadas ao loader",
            unit="s",
        )

    def record_hit(self, key: str, latency: float) -> None:
        """Registra cache hit."""
        self._hits_counter.add(1, {"key": key})
        self._latency_histogram.record(latency, {"operation": "hit", "key": key})

    def record_miss(self, key: str, latency: float) -> None:
        """Registra cache miss."""
        self._misses_counter.add(1, {"key": key})
        self._latency_histogram.record(latency, {"operation": "miss", "key": key})

    def record_load(self, key: str, duration: float) -> None:
        """Registra carga bem-sucedida."""
        self._loads_counter.add(1, {"key": key})
        self._load_duration_histogram.record(duration, {"key": key})

    def record_load_failure(self, key: str, error: Exception) -> None:
        """Registra falha do loader."""
        self._load_failures_counter.add(1, {"key": key, "error_type": type(error).__name__})

    def record_discard(self, key: str) -> None:
        """Registra valor descartado."""
        self._discards_counter.add(1, {"key": key})

    def record_error(self, key: str, error: Exception) -> None:
        """Registra erro do store."""
        self._errors_counter.add(1, {"key": key, "error_type": type(error).__name__})


class InMemoryMetrics:
    """Coletor de métricas em memória com estatísticas por chave.

    Útil para desenvolvimento, testes e análise detalhada.
    Mantém estatísticas agregadas e por chave com thread-safety.

    Attributes:
        max_samples: Máximo de amostras de latência mantidas
    """

    def __init__(self, max_samples: int = 1000) -> None:
        """Inicializa coletor de métricas.

        Args:
            max_samples: Máximo de amostras de latência a manter
        """
        self._max_samples = max_samples
        self._lock = Lock()
        self._overall = CacheStats()
        self._by_key: dict[str, KeyStats] = defaultdict(KeyStats)

    def record_hit(self, key: str, latency: float) -> None:
        """Registra cache hit."""
        with self._lock:
            self._overall.hits += 1
            self._overall.hit_latencies.append(latency)
            self._trim_samples(self._overall.hit_latencies)
            self._by_key[key].hits += 1

    def record_miss(self, key: str, latency: float) -> None:
        """Registra cache miss."""
        with self._lock:
            self._overall.misses += 1
            self._by_key[key].misses += 1

    def record_load(self, key: str, duration: float) -> None:
        """Registra carga bem-sucedida."""
        with self._lock:
            self._overall.loads += 1
            self._overall.load_durations.append(duration)
            self._trim_samples(self._overall.load_durations)

            self._by_key[key].loads += 1
            self._by_key[key].total_load_duration += duration

    def record_load_failure(self, key: str, error: Exception) -> None:
        """Registra falha do loader."""
        with self._lock:
            self._overall.load_failures += 1
            self._by_key[key].load_failures += 1

    def record_discard(self, key: str) -> None:
        """Registra valor descartado."""
        with self._lock:
            self._overall.discards += 1
            self._by_key[key].discards += 1

    def record_error(self, key: str, error: Exception) -> None:
        """Registra erro do store."""
        with self._lock:
            self._overall.errors += 1
            self._by_key[key].errors += 1

    def _trim_samples(self, samples: list[Any]) -> None:
        """Remove amostras antigas se exceder limite."""
        if len(samples) > self._max_samples:
            del samples[: len(samples) - self._max_samples]

    def get_stats(self) -> CacheStats:
        """Retorna estatísticas agregadas."""
        with self._lock:
            return CacheStats(
                hits=self._overall.hits,
                misses=self._overall.misses,
                loads=self._overall.loads,
                load_failures=self._overall.load_failures,
                discards=self._overall.discards,
                errors=self._overall.errors,
                hit_latencies=self._overall.hit_latencies.copy(),
                load_durations=self._overall.load_durations.copy(),
            )

    def get_key_stats(self, key: str) -> KeyStats | None:
        """Retorna estatísticas de uma chave específica."""
        with self._lock:
            if key not in self._by_key:
                return None
            return self._copy_key_stats(self._by_key[key])

    def get_all_key_stats(self) -> dict[str, KeyStats]:
        """Retorna estatísticas de todas as chaves."""
        with self._lock:
            return {key: self._copy_key_stats(stats) for key, stats in self._by_key.items()}

    def get_top_keys(self, by: str = "hits", limit: int = 10) -> list[tuple[str, int]]:
        """Retorna as chaves mais acessadas.

        Args:
            by: Critério de ordenação (hits, misses, loads, load_failures, discards, errors)
            limit: Número máximo de chaves a retornar
        """
        with self._lock:
            items = [(key, getattr(stats, by)) for key, stats in self._by_key.items()]
            items.sort(key=lambda x: x[1], reverse=True)
            return items[:limit]

    def reset(self) -> None:
        """Reseta todas as estatísticas."""
        with self._lock:
            self._overall = CacheStats()
            self._by_key.clear()

    @staticmethod
    def _copy_key_stats(stats: KeyStats) -> KeyStats:
        return KeyStats(
            hits=stats.hits,
            misses=stats.misses,
            loads=stats.loads,
            load_failures=stats.load_failures,
            discards=stats.discards,
            errors=stats.errors,
            total_load_duration=stats.total_load_duration,
        )
