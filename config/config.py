import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from maci_crypto.errors import StructuralMismatch

logger = logging.getLogger(__name__)


@dataclass
class RoundConfig:
    state_tree_depth: int = 2
    int_state_tree_depth: int = 1
    vote_option_tree_depth: int = 1
    batch_size: int = 5
    max_vote_options: int = 5
    is_quadratic_cost: bool = False
    tree_arity: int = 5
    initial_voice_credits: int = 100
    is_amaci: bool = True

    @property
    def state_capacity(self) -> int:
        return self.tree_arity ** self.state_tree_depth

    @property
    def max_sign_ups(self) -> int:
        """Last state slot is reserved for redirected invalid commands"""
        return self.state_capacity - 1

    @property
    def vote_option_capacity(self) -> int:
        return self.tree_arity ** self.vote_option_tree_depth

    @property
    def tally_batch_size(self) -> int:
        return self.tree_arity ** self.int_state_tree_depth

    def validate(self):
        """Reject parameter combinations no batch can be processed with"""
        if not 2 <= self.tree_arity <= 12:
            raise StructuralMismatch(f"tree_arity must be within 2..12, got {self.tree_arity}")
        if self.state_tree_depth < 1 or self.vote_option_tree_depth < 1:
            raise StructuralMismatch("Tree depths must be at least 1")
        if not 1 <= self.int_state_tree_depth <= self.state_tree_depth:
            raise StructuralMismatch(
                f"int_state_tree_depth {self.int_state_tree_depth} must be within "
                f"1..{self.state_tree_depth}")
        if self.batch_size < 1:
            raise StructuralMismatch(f"batch_size must be positive, got {self.batch_size}")
        if not 1 <= self.max_vote_options <= self.vote_option_capacity:
            raise StructuralMismatch(
                f"max_vote_options {self.max_vote_options} exceeds vote option tree "
                f"capacity {self.vote_option_capacity}")
        if self.initial_voice_credits < 0:
            raise StructuralMismatch("initial_voice_credits must be non-negative")


@dataclass
class CryptoConfig:
    status_plaintext_bound: int = 256
    deactivate_random_salt: int = 20040

    def __post_init__(self):
        if self.status_plaintext_bound < 2 or self.status_plaintext_bound % 2:
            raise StructuralMismatch(
                f"status_plaintext_bound must be an even number >= 2, got "
                f"{self.status_plaintext_bound}")


@dataclass
class SystemConfig:
    round_config: RoundConfig = field(default_factory=RoundConfig)
    crypto_config: CryptoConfig = field(default_factory=CryptoConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    enable_benchmarking: bool = True
    enable_debug_mode: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.results_dir.mkdir(parents=True, exist_ok=True)

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.enable_debug_mode else "INFO"


def _round_config_from_dict(data: Dict[str, Any]) -> RoundConfig:
    defaults = RoundConfig()
    return RoundConfig(
        state_tree_depth=int(data.get('state_tree_depth', defaults.state_tree_depth)),
        int_state_tree_depth=int(data.get('int_state_tree_depth', defaults.int_state_tree_depth)),
        vote_option_tree_depth=int(
            data.get('vote_option_tree_depth', defaults.vote_option_tree_depth)),
        batch_size=int(data.get('batch_size', defaults.batch_size)),
        max_vote_options=int(data.get('max_vote_options', defaults.max_vote_options)),
        is_quadratic_cost=bool(data.get('is_quadratic_cost', defaults.is_quadratic_cost)),
        tree_arity=int(data.get('tree_arity', defaults.tree_arity)),
        initial_voice_credits=int(
            data.get('initial_voice_credits', defaults.initial_voice_credits)),
        is_amaci=bool(data.get('is_amaci', defaults.is_amaci)),
    )


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if not config_path.exists():
        return SystemConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load config file {config_path}: {e}")
        logger.warning("Using default configuration")
        return SystemConfig()

    crypto_data = config_data.get('crypto', {})
    crypto_config = CryptoConfig(
        status_plaintext_bound=int(crypto_data.get('status_plaintext_bound', 256)),
        deactivate_random_salt=int(crypto_data.get('deactivate_random_salt', 20040)),
    )

    return SystemConfig(
        round_config=_round_config_from_dict(config_data.get('round', {})),
        crypto_config=crypto_config,
        log_dir=Path(config_data.get('log_dir', 'logs')),
        results_dir=Path(config_data.get('results_dir', 'results')),
        enable_benchmarking=config_data.get('enable_benchmarking', True),
        enable_debug_mode=config_data.get('enable_debug_mode', False),
    )


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")

    rc = config.round_config
    config_data = {
        'round': {
            'state_tree_depth': rc.state_tree_depth,
            'int_state_tree_depth': rc.int_state_tree_depth,
            'vote_option_tree_depth': rc.vote_option_tree_depth,
            'batch_size': rc.batch_size,
            'max_vote_options': rc.max_vote_options,
            'is_quadratic_cost': rc.is_quadratic_cost,
            'tree_arity': rc.tree_arity,
            'initial_voice_credits': rc.initial_voice_credits,
            'is_amaci': rc.is_amaci,
        },
        'crypto': {
            'status_plaintext_bound': config.crypto_config.status_plaintext_bound,
            'deactivate_random_salt': config.crypto_config.deactivate_random_salt,
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'enable_benchmarking': config.enable_benchmarking,
        'enable_debug_mode': config.enable_debug_mode,
    }

    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)

    logger.info(f"Configuration saved to {config_path}")
