"""Configuração e validação de parâmetros do cache."""

import logging
import os
from dataclasses import dataclass

from .exceptions import CacheConfigError

logger = logging.getLogger(__name__)

# Valores padrão
DEFAULT_CAPACITY = 1024
DEFAULT_TTL_SECONDS = 3600
DEFAULT_METER_NAME = "stampede_cache"

# Variáveis de ambiente
ENV_CAPACITY = "STAMPEDE_CACHE_CAPACITY"
ENV_DEFAULT_TTL = "STAMPEDE_CACHE_DEFAULT_TTL"
ENV_WAIT_TIMEOUT = "STAMPEDE_CACHE_WAIT_TIMEOUT"

# Mensagens de erro
ERROR_CAPACITY_TYPE_INVALID = "capacity must be int, got {type_name}"
ERROR_CAPACITY_INVALID = "capacity must be >= 1, got {value}"
ERROR_TTL_TYPE_INVALID = "default_ttl_seconds must be int or float, got {type_name}"
ERROR_TTL_INVALID = "default_ttl_seconds must be > 0, got {value}"
ERROR_WAIT_TIMEOUT_INVALID = "wait_timeout must be > 0 or None, got {value}"
ERROR_ENV_INVALID = "{name} must be numeric, got {value!r}"


def validate_capacity(capacity: int) -> None:
    """Valida capacidade do store.

    Raises:
        CacheConfigError: Se capacity não for int positivo
    """
    # bool é subclasse de int
    if isinstance(capacity, bool) or not isinstance(capacity, int):
        raise CacheConfigError(ERROR_CAPACITY_TYPE_INVALID.format(type_name=type(capacity).__name__))
    if capacity < 1:
        raise CacheConfigError(ERROR_CAPACITY_INVALID.format(value=capacity))


def validate_default_ttl(ttl_seconds: float) -> None:
    """Valida TTL padrão usado pelo decorator."""
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, (int, float)):
        raise CacheConfigError(ERROR_TTL_TYPE_INVALID.format(type_name=type(ttl_seconds).__name__))
    if ttl_seconds <= 0:
        raise CacheConfigError(ERROR_TTL_INVALID.format(value=ttl_seconds))


def validate_wait_timeout(wait_timeout: float | None) -> None:
    """Valida timeout de espera (None = espera indefinida)."""
    if wait_timeout is None:
        return
    if isinstance(wait_timeout, bool) or not isinstance(wait_timeout, (int, float)) or wait_timeout <= 0:
        raise CacheConfigError(ERROR_WAIT_TIMEOUT_INVALID.format(value=wait_timeout))


@dataclass(frozen=True)
class CacheConfig:
    """Configuração do cache.

    Attributes:
        capacity: Número máximo de entradas no store
        default_ttl_seconds: TTL usado pelo @cacheable quando não informado
        wait_timeout: Tempo máximo (s) que um waiter espera por uma carga em andamento
        meter_name: Nome do meter OpenTelemetry
    """

    capacity: int = DEFAULT_CAPACITY
    default_ttl_seconds: float = DEFAULT_TTL_SECONDS
    wait_timeout: float | None = None
    meter_name: str = DEFAULT_METER_NAME

    def __post_init__(self) -> None:
        validate_capacity(self.capacity)
        validate_default_ttl(self.default_ttl_seconds)
        validate_wait_timeout(self.wait_timeout)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Cria configuração a partir das variáveis de ambiente.

        Variáveis ausentes usam os valores padrão.

        Raises:
            CacheConfigError: Se alguma variável tiver valor inválido
        """
        capacity = _read_env(ENV_CAPACITY, int, DEFAULT_CAPACITY)
        default_ttl = _read_env(ENV_DEFAULT_TTL, float, DEFAULT_TTL_SECONDS)
        wait_timeout = _read_env(ENV_WAIT_TIMEOUT, float, None)
        config = cls(capacity=capacity, default_ttl_seconds=default_ttl, wait_timeout=wait_timeout)
        logger.debug(f"Configuração carregada do ambiente: {config}")
        return config


def _read_env(name: str, cast: type, default: float | None) -> float | None:
    """Lê variável de ambiente numérica."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise CacheConfigError(ERROR_ENV_INVALID.format(name=name, value=raw)) from e
