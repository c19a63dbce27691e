"""Exceções do stampede-cache."""


class CacheError(Exception):
    """Erro base para operações de cache."""

    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class CacheKeyError(CacheError):
    """Erro relacionado à chave de cache (vazia, inválida, etc.)."""

    pass


class KeyNotFoundError(CacheError):
    """Sinal interno do store: a chave não existe ou expirou.

    Nunca chega ao chamador de ``LoadCoordinator.get``; dispara o
    caminho de carga.
    """

    pass


class CacheStoreError(CacheError):
    """Falha do store diferente de ``KeyNotFoundError``.

    Propagada imediatamente, sem coordenação de carga e sem afetar
    o contador de falhas da chave.
    """

    pass


class CacheWaitTimeoutError(CacheError):
    """Tempo de espera por uma carga em andamento foi excedido."""

    pass


class CacheConfigError(CacheError, ValueError):
    """Valor de configuração inválido."""

    pass
