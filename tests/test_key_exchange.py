import pytest

from maci_crypto.eddsa import gen_keypair
from maci_crypto.errors import CryptographicFailure, DecryptionError, RangeError
from maci_crypto.field import SNARK_FIELD_SIZE, UINT128
from maci_crypto.key_exchange import gen_ecdh_shared_key, poseidon_decrypt, poseidon_encrypt

PLAINTEXT = [11, 22, 33, 44, 55, 66]


@pytest.fixture(scope="module")
def shared_key():
    alice, bob = gen_keypair(1), gen_keypair(2)
    return gen_ecdh_shared_key(alice.priv_key, bob.pub_key)


class TestECDH:
    def test_symmetry(self):
        alice, bob = gen_keypair(1), gen_keypair(2)
        assert gen_ecdh_shared_key(alice.priv_key, bob.pub_key) == \
            gen_ecdh_shared_key(bob.priv_key, alice.pub_key)

    def test_keypair_helper_matches(self):
        alice, bob = gen_keypair(1), gen_keypair(2)
        assert alice.ecdh(bob.pub_key) == gen_ecdh_shared_key(alice.priv_key, bob.pub_key)

    def test_off_curve_key(self):
        with pytest.raises(CryptographicFailure):
            gen_ecdh_shared_key(1, (1, 2))


class TestPoseidonCipher:
    def test_round_trip(self, shared_key):
        ciphertext = poseidon_encrypt(PLAINTEXT, shared_key, 0)
        assert len(ciphertext) == 7
        assert poseidon_decrypt(ciphertext, shared_key, 0, 6) == PLAINTEXT

    def test_short_plaintext_is_padded(self, shared_key):
        ciphertext = poseidon_encrypt([1, 2, 3, 4], shared_key, 5)
        assert len(ciphertext) == 7
        assert poseidon_decrypt(ciphertext, shared_key, 5, 4) == [1, 2, 3, 4]

    def test_tampered_tag(self, shared_key):
        ciphertext = poseidon_encrypt(PLAINTEXT, shared_key, 0)
        ciphertext[-1] = (ciphertext[-1] + 1) % SNARK_FIELD_SIZE
        with pytest.raises(DecryptionError):
            poseidon_decrypt(ciphertext, shared_key, 0, 6)

    def test_wrong_key(self, shared_key):
        ciphertext = poseidon_encrypt(PLAINTEXT, shared_key, 0)
        other = gen_ecdh_shared_key(3, gen_keypair(4).pub_key)
        with pytest.raises(DecryptionError):
            poseidon_decrypt(ciphertext, other, 0, 6)

    def test_wrong_nonce(self, shared_key):
        ciphertext = poseidon_encrypt(PLAINTEXT, shared_key, 0)
        with pytest.raises(DecryptionError):
            poseidon_decrypt(ciphertext, shared_key, 1, 6)

    def test_wrong_length(self, shared_key):
        ciphertext = poseidon_encrypt(PLAINTEXT, shared_key, 0)
        with pytest.raises(DecryptionError):
            poseidon_decrypt(ciphertext[:-1], shared_key, 0, 6)

    def test_range_checks(self, shared_key):
        with pytest.raises(RangeError):
            poseidon_encrypt([SNARK_FIELD_SIZE], shared_key, 0)
        with pytest.raises(RangeError):
            poseidon_encrypt(PLAINTEXT, shared_key, UINT128)
