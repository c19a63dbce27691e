"""Testes para o DefaultKeyBuilder."""

import pytest

from stampede_cache.exceptions import CacheKeyError
from stampede_cache.key_builder import HASH_LENGTH, DefaultKeyBuilder


def sample(a: int, b: int = 0) -> int:
    return a + b


class Service:
    def method(self, x: int) -> int:
        return x

    @classmethod
    def factory(cls, x: int) -> int:
        return x


class TestDefaultKeyBuilder:
    """Testes para DefaultKeyBuilder."""

    def test_key_format(self) -> None:
        """Chave deve ter prefixo, caminho da função e hash."""
        key = DefaultKeyBuilder("app").build_key(sample, (1,), {})

        prefix, path, digest = key.split(":")
        assert prefix == "app"
        assert path == f"{__name__}.sample"
        assert len(digest) == HASH_LENGTH

    def test_deterministic(self) -> None:
        """Mesmos argumentos devem gerar a mesma chave."""
        builder = DefaultKeyBuilder()
        assert builder.build_key(sample, (1, 2), {}) == builder.build_key(sample, (1, 2), {})

    def test_different_args_different_keys(self) -> None:
        """Argumentos diferentes devem gerar chaves diferentes."""
        builder = DefaultKeyBuilder()
        assert builder.build_key(sample, (1,), {}) != builder.build_key(sample, (2,), {})

    def test_kwargs_order_irrelevant(self) -> None:
        """Ordem dos kwargs não deve importar."""
        builder = DefaultKeyBuilder()
        assert builder.build_key(sample, (), {"a": 1, "b": 2}) == builder.build_key(sample, (), {"b": 2, "a": 1})

    def test_self_excluded(self) -> None:
        """Instâncias diferentes devem compartilhar a chave do método."""
        builder = DefaultKeyBuilder()
        key1 = builder.build_key(Service.method, (Service(), 5), {})
        key2 = builder.build_key(Service.method, (Service(), 5), {})
        assert key1 == key2

    def test_mixed_type_sets(self) -> None:
        """Sets com tipos mistos devem ser normalizáveis."""
        builder = DefaultKeyBuilder()
        key1 = builder.build_key(sample, ({1, "a", 2.5},), {})
        key2 = builder.build_key(sample, ({2.5, "a", 1},), {})
        assert key1 == key2

    def test_bytes_and_objects(self) -> None:
        """Bytes e objetos arbitrários devem gerar chave."""
        builder = DefaultKeyBuilder()
        assert builder.build_key(sample, (b"\x00\xff", object), {})

    @pytest.mark.parametrize("prefix", ["", "   "])
    def test_empty_prefix_rejected(self, prefix: str) -> None:
        """Prefixo vazio deve ser rejeitado."""
        with pytest.raises(CacheKeyError):
            DefaultKeyBuilder(prefix)

    def test_prefix_property(self) -> None:
        """Deve expor o prefixo."""
        assert DefaultKeyBuilder("x").prefix == "x"
