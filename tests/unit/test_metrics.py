"""Testes para o sistema de métricas."""

import threading
from unittest.mock import MagicMock, patch

import pytest

from stampede_cache.metrics import (
    CacheStats,
    InMemoryMetrics,
    KeyStats,
    NoOpMetrics,
    OpenTelemetryMetrics,
)


class TestNoOpMetrics:
    """Testes para NoOpMetrics."""

    def test_accepts_all_events(self) -> None:
        """Deve aceitar todos os eventos sem fazer nada."""
        metrics = NoOpMetrics()
        metrics.record_hit("key", 0.001)
        metrics.record_miss("key", 0.001)
        metrics.record_load("key", 0.5)
        metrics.record_load_failure("key", RuntimeError("down"))
        metrics.record_discard("key")
        metrics.record_error("key", OSError("io"))


class TestCacheStats:
    """Testes para CacheStats."""

    def test_hit_ratio(self) -> None:
        """Deve calcular hit ratio."""
        stats = CacheStats(hits=75, misses=25)
        assert stats.total_operations == 100
        assert stats.hit_ratio == 0.75

    def test_hit_ratio_no_operations(self) -> None:
        """Deve retornar 0 quando não há operações."""
        assert CacheStats().hit_ratio == 0.0

    def test_coalesced_misses(self) -> None:
        """Misses que não chamaram o loader foram coalescidos."""
        stats = CacheStats(misses=10, loads=1, load_failures=1)
        assert stats.coalesced_misses == 8

    def test_avg_latencies(self) -> None:
        """Deve calcular médias em milissegundos."""
        stats = CacheStats(hit_latencies=[0.001, 0.003], load_durations=[0.2])
        assert stats.avg_hit_latency_ms == pytest.approx(2.0)
        assert stats.avg_load_duration_ms == pytest.approx(200.0)
        assert CacheStats().avg_load_duration_ms == 0.0


class TestKeyStats:
    """Testes para KeyStats."""

    def test_avg_load_duration(self) -> None:
        """Deve calcular duração média das cargas."""
        stats = KeyStats(loads=2, total_load_duration=0.5)
        assert stats.avg_load_duration_ms == pytest.approx(250.0)

    def test_hit_ratio(self) -> None:
        """Deve calcular hit ratio por chave."""
        assert KeyStats(hits=8, misses=2).hit_ratio == 0.8


class TestInMemoryMetrics:
    """Testes para InMemoryMetrics."""

    def test_records_all_events(self) -> None:
        """Deve contar cada tipo de evento."""
        metrics = InMemoryMetrics()
        metrics.record_hit("key", 0.001)
        metrics.record_miss("key", 0.001)
        metrics.record_load("key", 0.1)
        metrics.record_load_failure("key", RuntimeError("down"))
        metrics.record_discard("key")
        metrics.record_error("key", OSError("io"))

        stats = metrics.get_stats()
        assert (stats.hits, stats.misses, stats.loads) == (1, 1, 1)
        assert (stats.load_failures, stats.discards, stats.errors) == (1, 1, 1)
        assert stats.load_durations == [0.1]

    def test_per_key_stats(self) -> None:
        """Deve manter estatísticas por chave."""
        metrics = InMemoryMetrics()
        metrics.record_load("a", 0.2)
        metrics.record_load("a", 0.4)
        metrics.record_miss("b", 0.001)

        a_stats = metrics.get_key_stats("a")
        assert a_stats is not None
        assert a_stats.loads == 2
        assert a_stats.total_load_duration == pytest.approx(0.6)
        assert metrics.get_key_stats("missing") is None
        assert set(metrics.get_all_key_stats()) == {"a", "b"}

    def test_returned_stats_are_copies(self) -> None:
        """Alterar o retorno não deve afetar o coletor."""
        metrics = InMemoryMetrics()
        metrics.record_load("a", 0.2)

        metrics.get_stats().load_durations.clear()
        key_stats = metrics.get_key_stats("a")
        assert key_stats is not None
        key_stats.loads = 99

        assert metrics.get_stats().load_durations == [0.2]
        assert metrics.get_key_stats("a").loads == 1  # type: ignore[union-attr]

    def test_get_top_keys(self) -> None:
        """Deve ordenar chaves pelo critério escolhido."""
        metrics = InMemoryMetrics()
        for _ in range(3):
            metrics.record_load_failure("flaky", RuntimeError())
        metrics.record_load_failure("ok", RuntimeError())

        top = metrics.get_top_keys(by="load_failures", limit=1)
        assert top == [("flaky", 3)]

    def test_max_samples_limit(self) -> None:
        """Deve limitar número de amostras."""
        metrics = InMemoryMetrics(max_samples=5)
        for i in range(10):
            metrics.record_hit("key", 0.001 * i)
            metrics.record_load("key", 0.01 * i)

        stats = metrics.get_stats()
        assert len(stats.hit_latencies) == 5
        assert len(stats.load_durations) == 5

    def test_reset(self) -> None:
        """Deve resetar estatísticas."""
        metrics = InMemoryMetrics()
        metrics.record_hit("key", 0.001)
        metrics.reset()

        assert metrics.get_stats().hits == 0
        assert metrics.get_key_stats("key") is None

    def test_thread_safety(self) -> None:
        """Deve ser thread-safe."""
        metrics = InMemoryMetrics()

        def record() -> None:
            for _ in range(100):
                metrics.record_miss("key", 0.001)

        threads = [threading.Thread(target=record) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert metrics.get_stats().misses == 1000


def _otel_mocks() -> tuple[MagicMock, MagicMock, MagicMock, MagicMock]:
    mock_meter = MagicMock()
    mock_counter = MagicMock()
    mock_histogram = MagicMock()
    mock_meter.create_counter.return_value = mock_counter
    mock_meter.create_histogram.return_value = mock_histogram
    mock_otel = MagicMock()
    mock_otel.get_meter.return_value = mock_meter
    return mock_otel, mock_meter, mock_counter, mock_histogram


class TestOpenTelemetryMetrics:
    """Testes para OpenTelemetryMetrics."""

    def test_init_creates_counters_and_histograms(self) -> None:
        """Deve criar counters e histograms na inicialização."""
        mock_otel, mock_meter, _, _ = _otel_mocks()

        with patch("stampede_cache.metrics.otel_metrics", mock_otel):
            OpenTelemetryMetrics("test_meter")

        mock_otel.get_meter.assert_called_once_with("test_meter")
        assert mock_meter.create_counter.call_count == 6
        assert mock_meter.create_histogram.call_count == 2

    def test_default_meter_name(self) -> None:
        """Deve usar nome de meter padrão."""
        mock_otel, _, _, _ = _otel_mocks()

        with patch("stampede_cache.metrics.otel_metrics", mock_otel):
            OpenTelemetryMetrics()

        mock_otel.get_meter.assert_called_once_with("stampede_cache")

    def test_record_hit(self) -> None:
        """Deve registrar hit com latência."""
        mock_otel, _, counter, histogram = _otel_mocks()

        with patch("stampede_cache.metrics.otel_metrics", mock_otel):
            metrics = OpenTelemetryMetrics()
        metrics.record_hit("k", 0.005)

        counter.add.assert_called_with(1, {"key": "k"})
        histogram.record.assert_called_with(0.005, {"operation": "hit", "key": "k"})

    def test_record_load(self) -> None:
        """Deve registrar carga com duração."""
        mock_otel, _, counter, histogram = _otel_mocks()

        with patch("stampede_cache.metrics.otel_metrics", mock_otel):
            metrics = OpenTelemetryMetrics()
        metrics.record_load("k", 0.25)

        counter.add.assert_called_with(1, {"key": "k"})
        histogram.record.assert_called_with(0.25, {"key": "k"})

    def test_record_load_failure(self) -> None:
        """Deve registrar falha com o tipo do erro."""
        mock_otel, _, counter, _ = _otel_mocks()

        with patch("stampede_cache.metrics.otel_metrics", mock_otel):
            metrics = OpenTelemetryMetrics()
        metrics.record_load_failure("k", TimeoutError("slow"))

        counter.add.assert_called_with(1, {"key": "k", "error_type": "TimeoutError"})

    def test_record_discard(self) -> None:
        """Deve registrar descarte."""
        mock_otel, _, counter, _ = _otel_mocks()

        with patch("stampede_cache.metrics.otel_metrics", mock_otel):
            metrics = OpenTelemetryMetrics()
        metrics.record_discard("k")

        counter.add.assert_called_with(1, {"key": "k"})

    def test_works_with_real_api(self) -> None:
        """Sem provider configurado, a API do OpenTelemetry é no-op."""
        metrics = OpenTelemetryMetrics()
        metrics.record_miss("k", 0.001)
        metrics.record_error("k", OSError("io"))
