"""Construtor de chaves determinísticas para funções decoradas."""

import hashlib
import inspect
import json
from collections.abc import Callable
from typing import Any

from .exceptions import CacheKeyError

HASH_LENGTH = 16


class DefaultKeyBuilder:
    """Gera chaves no formato ``{prefix}:{module}.{qualname}:{hash}``.

    O hash SHA256 cobre os argumentos normalizados; ``self``/``cls`` são
    ignorados para que instâncias da mesma classe compartilhem entradas.

    Attributes:
        prefix: Prefixo de todas as chaves geradas
    """

    def __init__(self, prefix: str = "cache") -> None:
        if not prefix or not prefix.strip():
            raise CacheKeyError("Prefixo não pode ser vazio")
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def build_key(self, func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
        """Constrói chave para a chamada ``func(*args, **kwargs)``."""
        module = getattr(func, "__module__", None) or "unknown"
        qualname = getattr(func, "__qualname__", None) or getattr(func, "__name__", "anonymous")
        digest = self._digest(self._drop_receiver(func, args), kwargs)
        return f"{self._prefix}:{module}.{qualname}:{digest}"

    @staticmethod
    def _drop_receiver(func: Callable[..., Any], args: tuple[Any, ...]) -> tuple[Any, ...]:
        if not args:
            return args
        try:
            params = list(inspect.signature(func).parameters)
        except (ValueError, TypeError):
            return args
        if params and params[0] in ("self", "cls"):
            return args[1:]
        return args

    def _digest(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
        payload = json.dumps(
            {"args": _normalize(args), "kwargs": _normalize(kwargs)},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def _normalize(obj: Any) -> Any:
    """Converte argumentos em estrutura JSON estável."""
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, bytes):
        return obj.hex()
    if isinstance(obj, (list, tuple)):
        return [_normalize(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): _normalize(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        # tipos mistos não são ordenáveis diretamente
        return sorted((_normalize(item) for item in obj), key=lambda x: (type(x).__name__, str(x)))
    return repr(obj)
