import pytest

from coordinator.command import (CIPHERTEXT_LENGTH, Command, Message, chain_message, empty_message,
                                 hash_message, msg_to_command, pack_element, unpack_element)
from coordinator.voter import batch_gen_message, gen_message
from maci_crypto.eddsa import gen_keypair, verify_signature
from maci_crypto.errors import RangeError
from maci_crypto.field import UINT32, UINT96
from maci_crypto.poseidon import hash2, hash12


class TestPacking:
    def test_round_trip(self):
        packed = pack_element(1, 5, 2, 100, salt=7)
        assert unpack_element(packed) == {'nonce': 1, 'state_idx': 5, 'vo_idx': 2, 'new_votes': 100}

    def test_bit_layout(self):
        packed = pack_element(3, 4, 5, 6, salt=1)
        assert packed == 3 + (4 << 32) + (5 << 64) + (6 << 96) + (1 << 192)

    def test_random_salt_keeps_fields(self):
        packed = pack_element(UINT32 - 1, 0, 7, UINT96 - 1)
        fields = unpack_element(packed)
        assert fields['nonce'] == UINT32 - 1
        assert fields['new_votes'] == UINT96 - 1

    @pytest.mark.parametrize("args", [
        (UINT32, 0, 0, 0),
        (0, UINT32, 0, 0),
        (0, 0, UINT32, 0),
        (0, 0, 0, UINT96),
        (-1, 0, 0, 0),
    ])
    def test_field_widths(self, args):
        with pytest.raises(RangeError):
            pack_element(*args, salt=0)

    def test_salt_must_fit_in_field(self):
        with pytest.raises(RangeError):
            pack_element(1, 1, 1, 1, salt=1 << 62)

    def test_unpack_rejects_non_field(self):
        with pytest.raises(RangeError):
            unpack_element(-1)

    def test_plaintext_length(self):
        with pytest.raises(RangeError):
            Command.from_plaintext([1, 2, 3])


class TestMessages:
    def test_ciphertext_length(self):
        with pytest.raises(RangeError):
            Message(ciphertext=[1] * (CIPHERTEXT_LENGTH - 1), enc_pub_key=(0, 0))

    def test_chain_hash(self):
        ciphertext = list(range(1, 8))
        message = chain_message(ciphertext, (8, 9), 123)
        assert message.prev_hash == 123
        assert message.hash == hash2([hash12(ciphertext + [8, 9]), 123])
        assert hash_message(ciphertext, (8, 9)) == hash12(ciphertext + [8, 9])

    def test_empty_message(self):
        message = empty_message()
        assert message.is_empty
        assert msg_to_command(message, gen_keypair(1)) is None


class TestCommandDecryption:
    def test_decrypts_signed_command(self, coordinator_keypair, voters):
        voter = voters[0]
        enc = gen_keypair(555)
        ciphertext = gen_message(3, voter, coordinator_keypair.pub_key, enc,
                                 nonce=1, vo_idx=2, new_votes=40, is_last_cmd=False, salt=9)
        command = msg_to_command(chain_message(ciphertext, enc.pub_key, 0), coordinator_keypair)

        assert command is not None
        assert (command.nonce, command.state_idx, command.vo_idx, command.new_votes) == (1, 3, 2, 40)
        assert command.new_pub_key == voter.pub_key
        assert verify_signature(command.msg_hash, command.signature, voter.pub_key)
        assert command.to_plaintext()[0] == command.packed

    def test_last_command_clears_key(self, coordinator_keypair, voters):
        enc = gen_keypair(556)
        ciphertext = gen_message(0, voters[0], coordinator_keypair.pub_key, enc,
                                 nonce=1, vo_idx=0, new_votes=1, is_last_cmd=True)
        command = msg_to_command(chain_message(ciphertext, enc.pub_key, 0), coordinator_keypair)
        assert command.new_pub_key == (0, 0)

    def test_other_coordinator_cannot_read(self, coordinator_keypair, voters):
        enc = gen_keypair(557)
        ciphertext = gen_message(0, voters[0], coordinator_keypair.pub_key, enc,
                                 nonce=1, vo_idx=0, new_votes=1, is_last_cmd=False)
        assert msg_to_command(chain_message(ciphertext, enc.pub_key, 0), gen_keypair(9)) is None

    def test_batch_gen_message_order(self, coordinator_keypair, voters):
        payloads = batch_gen_message(1, voters[1], coordinator_keypair.pub_key, [(0, 10), (1, 20)])
        commands = [
            msg_to_command(chain_message(p.msg, p.enc_pub_key, 0), coordinator_keypair)
            for p in payloads
        ]
        assert [c.nonce for c in commands] == [2, 1]
        assert commands[0].new_pub_key == (0, 0)
        assert commands[1].new_pub_key == voters[1].pub_key
