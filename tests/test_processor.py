from dataclasses import replace

import pytest

from coordinator.command import ConstraintViolation, chain_message
from coordinator.processor import BatchProcessor, pack_process_vals
from coordinator.state import RoundState
from coordinator.voter import batch_gen_message, gen_message
from maci_crypto.eddsa import gen_keypair
from maci_crypto.errors import StructuralMismatch
from maci_crypto.lean_tree import LeanTree, MerkleProof
from maci_crypto.poseidon import hash2
from maci_crypto.status_cipher import encrypt_odevity

from .conftest import build_state


def vote(coordinator_keypair, keypair, state_idx, vo_idx, new_votes, nonce=1,
         prev_hash=0, enc_seed=900):
    enc = gen_keypair(enc_seed + state_idx)
    ciphertext = gen_message(state_idx, keypair, coordinator_keypair.pub_key, enc,
                             nonce, vo_idx, new_votes, is_last_cmd=False, salt=12345)
    return chain_message(ciphertext, enc.pub_key, prev_hash)


def run(processor, state, messages, new_state_salt=0):
    return processor.process(
        state, messages,
        current_state_commitment=hash2([state.state_tree.root, 0]),
        current_state_salt=0,
        new_state_salt=new_state_salt)


@pytest.fixture
def state(round_config, voters):
    return build_state(round_config, voters[:6])


@pytest.fixture
def processor(round_config, coordinator_keypair):
    return BatchProcessor(round_config, coordinator_keypair, num_sign_ups=6)


class TestValidVote:
    def test_single_vote_changes_root(self, processor, state, coordinator_keypair, voters):
        root_before = state.state_tree.root
        result = run(processor, state, [vote(coordinator_keypair, voters[5], 5, 2, 100)])

        assert result.valid_count == 1
        assert result.outcomes[0].is_valid
        assert all(o.violation == ConstraintViolation.EMPTY_COMMAND for o in result.outcomes[1:])
        assert result.new_state_root != root_before

        leaf = result.state.leaf(5)
        assert leaf.balance == 0
        assert leaf.nonce == 1
        assert leaf.voted
        assert leaf.vo_tree.leaf(2) == 100
        assert result.state.state_tree.leaf(5) == leaf.commitment()

    def test_input_state_is_untouched(self, processor, state, coordinator_keypair, voters):
        root_before = state.state_tree.root
        run(processor, state, [vote(coordinator_keypair, voters[5], 5, 2, 100)])
        assert state.state_tree.root == root_before
        assert state.leaf(5).balance == 100
        assert not state.leaf(5).voted

    def test_input_hash_tracks_salt(self, processor, state, coordinator_keypair, voters):
        messages = [vote(coordinator_keypair, voters[5], 5, 2, 100)]
        first = run(processor, state, messages, new_state_salt=0)
        again = run(processor, state, messages, new_state_salt=0)
        salted = run(processor, state, messages, new_state_salt=7)

        assert first.input_hash == again.input_hash
        assert salted.input_hash != first.input_hash
        assert salted.new_state_root == first.new_state_root
        assert salted.new_state_commitment == hash2([first.new_state_root, 7])

    def test_commands_apply_oldest_first(self, processor, state, coordinator_keypair, voters):
        payloads = batch_gen_message(2, voters[2], coordinator_keypair.pub_key, [(2, 30), (3, 20)])
        messages = []
        prev_hash = 0
        for payload in payloads:
            message = chain_message(payload.msg, payload.enc_pub_key, prev_hash)
            messages.append(message)
            prev_hash = message.hash

        result = run(processor, state, messages)
        leaf = result.state.leaf(2)
        assert result.valid_count == 2
        assert leaf.balance == 50
        assert leaf.nonce == 2
        assert leaf.vo_tree.leaf(2) == 30
        assert leaf.vo_tree.leaf(3) == 20
        assert leaf.pub_key == (0, 0)

    def test_revote_refunds_previous_weight(self, processor, state, coordinator_keypair, voters):
        first = run(processor, state, [vote(coordinator_keypair, voters[1], 1, 0, 60)])
        second = run(processor, first.state,
                     [vote(coordinator_keypair, voters[1], 1, 0, 90, nonce=2)])
        assert second.outcomes[0].is_valid
        assert second.state.leaf(1).balance == 10

    def test_quadratic_cost(self, round_config, state, coordinator_keypair, voters):
        config = replace(round_config, is_quadratic_cost=True)
        processor = BatchProcessor(config, coordinator_keypair, num_sign_ups=6)

        ok = run(processor, state, [vote(coordinator_keypair, voters[0], 0, 1, 10)])
        assert ok.outcomes[0].is_valid
        assert ok.state.leaf(0).balance == 0

        too_much = run(processor, state, [vote(coordinator_keypair, voters[0], 0, 1, 11)])
        assert too_much.outcomes[0].violation == ConstraintViolation.INSUFFICIENT_BALANCE


class TestRejectedVotes:
    def assert_noop(self, result, state, violation):
        assert result.outcomes[0].violation == violation
        assert result.valid_count == 0
        assert result.new_state_root == state.state_tree.root
        assert result.outcomes[0].state_idx == state.redirect_index

    def test_wrong_nonce(self, processor, state, coordinator_keypair, voters):
        result = run(processor, state, [vote(coordinator_keypair, voters[5], 5, 2, 100, nonce=2)])
        self.assert_noop(result, state, ConstraintViolation.NONCE_MISMATCH)
        assert result.state.state_tree.leaf(5) == state.state_tree.leaf(5)

    def test_wrong_signer(self, processor, state, coordinator_keypair, voters):
        result = run(processor, state, [vote(coordinator_keypair, voters[4], 5, 2, 10)])
        self.assert_noop(result, state, ConstraintViolation.INVALID_SIGNATURE)

    def test_insufficient_balance(self, processor, state, coordinator_keypair, voters):
        result = run(processor, state, [vote(coordinator_keypair, voters[3], 3, 0, 101)])
        self.assert_noop(result, state, ConstraintViolation.INSUFFICIENT_BALANCE)

    def test_vote_option_overflow(self, processor, state, coordinator_keypair, voters):
        result = run(processor, state, [vote(coordinator_keypair, voters[3], 3, 5, 1)])
        self.assert_noop(result, state, ConstraintViolation.VOTE_OPTION_OVERFLOW)

    def test_state_index_overflow(self, processor, state, coordinator_keypair, voters):
        result = run(processor, state, [vote(coordinator_keypair, voters[6], 6, 0, 1)])
        self.assert_noop(result, state, ConstraintViolation.STATE_INDEX_OVERFLOW)

    def test_inactive_voter(self, processor, state, coordinator_keypair, voters):
        state.active_state_tree.update(3, 4)
        result = run(processor, state, [vote(coordinator_keypair, voters[3], 3, 0, 1)])
        self.assert_noop(result, state, ConstraintViolation.INACTIVE)

    def test_deactivated_status(self, processor, state, coordinator_keypair, voters):
        leaf = state.leaf(3).copy()
        status = encrypt_odevity(True, coordinator_keypair.pub_key, 31)
        leaf.d1, leaf.d2 = status.c1, status.c2
        state.set_leaf(3, leaf)

        result = run(processor, state, [vote(coordinator_keypair, voters[3], 3, 0, 1)])
        self.assert_noop(result, state, ConstraintViolation.DEACTIVATED)

    def test_unreadable_status(self, processor, state, coordinator_keypair, voters):
        leaf = state.leaf(3).copy()
        status = encrypt_odevity(False, gen_keypair(77).pub_key, 31)
        leaf.d1, leaf.d2 = status.c1, status.c2
        state.set_leaf(3, leaf)

        result = run(processor, state, [vote(coordinator_keypair, voters[3], 3, 0, 1)])
        self.assert_noop(result, state, ConstraintViolation.STATUS_UNREADABLE)

    def test_invalid_does_not_block_valid(self, processor, state, coordinator_keypair, voters):
        bad = vote(coordinator_keypair, voters[4], 4, 0, 500)
        good = vote(coordinator_keypair, voters[5], 5, 1, 5, prev_hash=bad.hash)
        result = run(processor, state, [bad, good])

        assert result.outcomes[0].violation == ConstraintViolation.INSUFFICIENT_BALANCE
        assert result.outcomes[1].is_valid
        assert result.state.leaf(5).vo_tree.leaf(1) == 5


class TestStructure:
    def test_empty_batch(self, processor, state):
        with pytest.raises(StructuralMismatch):
            run(processor, state, [])

    def test_batch_too_large(self, processor, state, coordinator_keypair, voters):
        messages = []
        prev_hash = 0
        for i in range(6):
            message = vote(coordinator_keypair, voters[i], i, 0, 1, prev_hash=prev_hash)
            messages.append(message)
            prev_hash = message.hash
        with pytest.raises(StructuralMismatch):
            run(processor, state, messages)

    def test_broken_chain(self, processor, state, coordinator_keypair, voters):
        messages = [vote(coordinator_keypair, voters[0], 0, 0, 1),
                    vote(coordinator_keypair, voters[1], 1, 0, 1)]
        with pytest.raises(StructuralMismatch):
            run(processor, state, messages)

    def test_too_many_sign_ups(self, round_config, state, coordinator_keypair, voters):
        processor = BatchProcessor(round_config, coordinator_keypair,
                                   num_sign_ups=round_config.max_sign_ups + 1)
        with pytest.raises(StructuralMismatch):
            run(processor, state, [vote(coordinator_keypair, voters[0], 0, 0, 1)])

    @pytest.mark.parametrize("depths", [(3, 1), (2, 2)])
    def test_tree_shape_mismatch(self, processor, coordinator_keypair, voters, depths):
        state = RoundState.create(depths[0], depths[1], 5)
        with pytest.raises(StructuralMismatch):
            run(processor, state, [vote(coordinator_keypair, voters[0], 0, 0, 1)])

    def test_rejection_leaves_state_alone(self, processor, state, coordinator_keypair, voters):
        root_before = state.state_tree.root
        messages = [vote(coordinator_keypair, voters[0], 0, 0, 1),
                    vote(coordinator_keypair, voters[1], 1, 0, 1)]
        with pytest.raises(StructuralMismatch):
            run(processor, state, messages)
        assert state.state_tree.root == root_before


class TestPublicInputs:
    def test_witness_shape(self, processor, state, coordinator_keypair, voters, round_config):
        result = run(processor, state, [vote(coordinator_keypair, voters[5], 5, 2, 100)])
        witness = result.witness

        assert len(witness['msgs']) == round_config.batch_size
        assert len(witness['currentStateLeaves']) == round_config.batch_size
        assert all(len(leaf) == 10 for leaf in witness['currentStateLeaves'])
        assert witness['packedVals'] == pack_process_vals(5, 6, False)
        assert witness['deactivateCommitment'] == state.deactivate_commitment()
        assert witness['currentStateLeaves'][0][2] == 100

        paths = witness['activeStateLeavesPathElements']
        assert len(paths) == round_config.batch_size
        for i, outcome in enumerate(result.outcomes):
            assert LeanTree.verify_proof(MerkleProof(
                root=witness['activeStateRoot'],
                leaf=witness['activeStateLeaves'][i],
                index=outcome.state_idx,
                siblings=paths[i]))

    def test_maci_mode_drops_deactivate_commitment(self, round_config, state,
                                                   coordinator_keypair, voters):
        messages = [vote(coordinator_keypair, voters[5], 5, 2, 100)]
        amaci = run(BatchProcessor(round_config, coordinator_keypair, 6), state, messages)
        maci = run(BatchProcessor(replace(round_config, is_amaci=False), coordinator_keypair, 6),
                   state, messages)

        assert 'deactivateCommitment' not in maci.witness
        assert maci.new_state_root == amaci.new_state_root
        assert maci.input_hash != amaci.input_hash

    def test_pack_process_vals(self):
        assert pack_process_vals(5, 3, True) == 5 + (3 << 32) + (1 << 64)
