"""Shared fixtures for the AMACI engine tests"""

from typing import List

import pytest

from config.config import RoundConfig
from coordinator import Coordinator
from coordinator.state import RoundState, state_leaf_for_sign_up
from maci_crypto import Keypair, gen_keypair


@pytest.fixture
def round_config() -> RoundConfig:
    return RoundConfig(
        state_tree_depth=2,
        int_state_tree_depth=1,
        vote_option_tree_depth=1,
        batch_size=5,
        max_vote_options=5,
        initial_voice_credits=100,
    )


@pytest.fixture(scope="session")
def coordinator_keypair() -> Keypair:
    return gen_keypair(0x5EED_C00D)


@pytest.fixture(scope="session")
def voters() -> List[Keypair]:
    return [gen_keypair(1000 + i) for i in range(8)]


def build_state(config: RoundConfig, keypairs: List[Keypair], balance: int = 100) -> RoundState:
    """State with keypairs signed up at indices 0..len-1"""
    state = RoundState.create(
        config.state_tree_depth, config.vote_option_tree_depth, config.tree_arity)
    for idx, keypair in enumerate(keypairs):
        state.set_leaf(idx, state_leaf_for_sign_up(
            config.vote_option_tree_depth, config.tree_arity, keypair.pub_key, balance))
    return state


@pytest.fixture
def filled_round(round_config, coordinator_keypair, voters) -> Coordinator:
    """Coordinator in FILLING with six voters signed up"""
    coordinator = Coordinator(coordinator_keypair)
    coordinator.init_round(round_config)
    for keypair in voters[:6]:
        coordinator.sign_up(keypair.pub_key)
    return coordinator
