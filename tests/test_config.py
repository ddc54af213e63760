from dataclasses import replace

import pytest

from config.config import CryptoConfig, RoundConfig, SystemConfig, load_config, save_config
from maci_crypto.errors import StructuralMismatch


class TestRoundConfig:
    def test_defaults(self):
        config = RoundConfig()
        config.validate()
        assert config.state_capacity == 25
        assert config.max_sign_ups == 24
        assert config.vote_option_capacity == 5
        assert config.tally_batch_size == 5

    @pytest.mark.parametrize("changes", [
        {'max_vote_options': 6},
        {'max_vote_options': 0},
        {'tree_arity': 13},
        {'tree_arity': 1},
        {'int_state_tree_depth': 3},
        {'batch_size': 0},
        {'state_tree_depth': 0},
        {'initial_voice_credits': -1},
    ])
    def test_validate_rejects(self, changes):
        with pytest.raises(StructuralMismatch):
            replace(RoundConfig(), **changes).validate()

    def test_crypto_bound(self):
        with pytest.raises(StructuralMismatch):
            CryptoConfig(status_plaintext_bound=255)


class TestLoadSave:
    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(tmp_path / "missing.yaml")
        assert config.round_config == RoundConfig()
        assert config.crypto_config == CryptoConfig()

    def test_round_trip(self, tmp_path):
        config = SystemConfig(
            round_config=RoundConfig(state_tree_depth=3, batch_size=10, is_quadratic_cost=True),
            crypto_config=CryptoConfig(status_plaintext_bound=64),
            log_dir=tmp_path / "logs",
            results_dir=tmp_path / "results",
            enable_debug_mode=True,
        )
        path = tmp_path / "config.yaml"
        save_config(config, path)

        loaded = load_config(path)
        assert loaded.round_config == config.round_config
        assert loaded.crypto_config == config.crypto_config
        assert loaded.log_dir == tmp_path / "logs"
        assert loaded.log_level == "DEBUG"

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "round:\n  batch_size: 25\n"
            f"log_dir: {tmp_path / 'logs'}\nresults_dir: {tmp_path / 'results'}\n")
        loaded = load_config(path)
        assert loaded.round_config.batch_size == 25
        assert loaded.round_config.tree_arity == 5
        assert loaded.log_level == "INFO"

    def test_invalid_yaml_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "config.yaml"
        path.write_text("round: [unclosed\n")
        assert load_config(path).round_config == RoundConfig()

    def test_system_config_creates_directories(self, tmp_path):
        SystemConfig(log_dir=tmp_path / "a", results_dir=tmp_path / "b")
        assert (tmp_path / "a").is_dir()
        assert (tmp_path / "b").is_dir()
