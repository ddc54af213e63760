import pytest

from coordinator.coordinator import RoundPhase
from coordinator.tally import MAX_VOTES, TallyProcessor, decode_tally_result
from coordinator.voter import batch_gen_message
from maci_crypto.errors import StructuralMismatch
from maci_crypto.poseidon import hash2
from maci_crypto.tree import Tree


def cast(coordinator, keypair, state_idx, plan):
    for payload in batch_gen_message(state_idx, keypair, coordinator.pub_key, plan):
        coordinator.push_message(payload.msg, payload.enc_pub_key)


@pytest.fixture
def voted_round(filled_round, voters):
    cast(filled_round, voters[0], 0, [(0, 10)])
    cast(filled_round, voters[1], 1, [(1, 20)])
    cast(filled_round, voters[2], 2, [(0, 5)])
    filled_round.end_vote_period()
    while filled_round.phase == RoundPhase.PROCESSING:
        filled_round.process_messages()
    return filled_round


class TestTally:
    def test_results_accumulate_votes_and_squares(self, voted_round):
        while voted_round.phase == RoundPhase.TALLYING:
            voted_round.process_tally()

        results = [decode_tally_result(v) for v in voted_round.get_tally_results()]
        assert results[0] == {'votes': 15, 'squares': 125}
        assert results[1] == {'votes': 20, 'squares': 400}
        assert all(r == {'votes': 0, 'squares': 0} for r in results[2:])

    def test_round_ends_after_last_batch(self, voted_round, round_config):
        voted_round.process_tally()
        assert voted_round.phase == RoundPhase.TALLYING
        voted_round.process_tally()
        assert voted_round.phase == RoundPhase.ENDED
        assert round_config.tally_batch_size * 2 >= voted_round.num_sign_ups

    def test_commitment_chain(self, voted_round):
        first = voted_round.process_tally(tally_salt=11)
        assert first.new_tally_commitment == hash2([first.results.root, 11])
        assert first.witness['currentTallyCommitment'] == 0

        second = voted_round.process_tally(tally_salt=12)
        assert second.witness['currentTallyCommitment'] == first.new_tally_commitment
        assert second.witness['currentResultsRootSalt'] == 11
        assert voted_round.tally_commitment == second.new_tally_commitment

    def test_input_state_untouched(self, voted_round, round_config):
        processor = TallyProcessor(round_config, voted_round.num_sign_ups)
        results = processor.new_results_tree()
        root = results.root
        processor.process(voted_round.state, results, 0, voted_round.state_commitment,
                          voted_round.state_salt, 0, 0, 0)
        assert results.root == root

    def test_witness_shape(self, voted_round, round_config):
        result = voted_round.process_tally()
        witness = result.witness
        assert len(witness['stateLeaf']) == round_config.tally_batch_size
        assert len(witness['votes']) == round_config.tally_batch_size
        assert witness['packedVals'] == 0 + (voted_round.num_sign_ups << 32)
        assert witness['stateCommitment'] == voted_round.state_commitment

    def test_batch_beyond_tree(self, voted_round, round_config):
        processor = TallyProcessor(round_config, voted_round.num_sign_ups)
        with pytest.raises(StructuralMismatch):
            processor.process(voted_round.state, processor.new_results_tree(), 5,
                              0, 0, 0, 0, 0)

    def test_results_tree_capacity(self, voted_round, round_config):
        processor = TallyProcessor(round_config, voted_round.num_sign_ups)
        with pytest.raises(StructuralMismatch):
            processor.process(voted_round.state, Tree(5, 2, 0), 0, 0, 0, 0, 0, 0)

    def test_decode(self):
        assert decode_tally_result(3 * MAX_VOTES + 9) == {'votes': 3, 'squares': 9}
