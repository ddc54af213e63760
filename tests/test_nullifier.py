import pytest

from maci_crypto.eddsa import format_priv_key_for_babyjub
from maci_crypto.errors import NullifierReusedError, RangeError
from maci_crypto.field import SNARK_FIELD_SIZE
from maci_crypto.nullifier import ADD_NEW_KEY_DOMAIN, NullifierRegistry, nullifier
from maci_crypto.poseidon import hash2


class TestNullifier:
    def test_deterministic(self):
        assert nullifier(12345) == nullifier(12345)

    def test_layout(self):
        assert nullifier(12345) == hash2([format_priv_key_for_babyjub(12345), ADD_NEW_KEY_DOMAIN])

    def test_distinct_keys(self):
        assert len({nullifier(k) for k in range(1, 6)}) == 5

    def test_domain_separation(self):
        assert nullifier(12345) != nullifier(12345, domain_tag=1)


class TestNullifierRegistry:
    def test_consume_once(self):
        registry = NullifierRegistry()
        value = nullifier(7)
        assert not registry.is_consumed(value)

        registry.consume(value)
        assert value in registry
        assert len(registry) == 1

        with pytest.raises(NullifierReusedError):
            registry.consume(value)
        assert len(registry) == 1

    def test_rejects_non_field_value(self):
        with pytest.raises(RangeError):
            NullifierRegistry().consume(SNARK_FIELD_SIZE)

    def test_export_load(self):
        registry = NullifierRegistry()
        registry.consume(nullifier(1))
        registry.consume(nullifier(2))

        loaded = NullifierRegistry.load(registry.export())
        assert loaded.domain_tag == ADD_NEW_KEY_DOMAIN
        assert nullifier(1) in loaded
        with pytest.raises(NullifierReusedError):
            loaded.consume(nullifier(2))
