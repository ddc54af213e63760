import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from config.config import SystemConfig, load_config
from coordinator import (Coordinator, RoundPhase, batch_gen_message, build_deactivate_payload,
                         decode_tally_result, gen_add_key_input)
from maci_crypto import Keypair, MaciError, gen_keypair, gen_random_salt, stringify
from utils.utils import PerformanceMonitor, create_performance_report, save_results, setup_logging

logger = logging.getLogger(__name__)


class RoundOrchestrator:
    """Drives one coordinator through a complete round with simulated voters"""

    def __init__(self, config: SystemConfig, seed: Optional[int] = None):
        self.config = config
        self.coordinator = Coordinator(crypto_config=config.crypto_config)
        self.performance_monitor = PerformanceMonitor()
        self.rng = np.random.default_rng(seed)

        self.voters: List[Keypair] = []
        self.expected_votes = [0] * config.round_config.max_vote_options
        self.witnesses: Dict[str, List[Dict[str, Any]]] = {
            'deactivate': [], 'process': [], 'tally': []}
        self.results: Dict[str, Any] = {
            'round_config': dict(config.round_config.__dict__),
            'deactivations': [],
            'processing': [],
            'tally': [],
            'integrity_checks': {},
        }

        self.coordinator.init_round(config.round_config)
        logger.info("Initialized round orchestrator")

    def sign_up_voters(self, num_voters: int):
        with self.performance_monitor.start_operation("sign_up"):
            for _ in range(num_voters):
                keypair = gen_keypair()
                self.coordinator.sign_up(keypair.pub_key)
                self.voters.append(keypair)
        logger.info(f"Signed up {num_voters} voters")

    def rotate_keys(self, voter_indices: List[int]) -> List[Tuple[int, Keypair]]:
        """Deactivate the given voters and sign each up again under a fresh key"""
        coordinator = self.coordinator
        round_config = self.config.round_config

        with self.performance_monitor.start_operation("publish_deactivate"):
            for idx in voter_indices:
                payload = build_deactivate_payload(idx, self.voters[idx], coordinator.pub_key)
                coordinator.push_deactivate_message(payload.msg, payload.enc_pub_key)

        while coordinator.processed_d_msg_count < len(coordinator.d_messages):
            with self.performance_monitor.start_operation("process_deactivate"):
                result = coordinator.process_deactivate_messages(
                    round_config.batch_size, coordinator.num_sign_ups)
            self.witnesses['deactivate'].append(result.witness)
            self.results['deactivations'].append({
                'batch_start_idx': result.batch_start_idx,
                'batch_end_idx': result.batch_end_idx,
                'leaves_added': len(result.new_deactivate),
                'new_deactivate_root': result.new_deactivate_root,
            })

        rotated = []
        for idx in voter_indices:
            with self.performance_monitor.start_operation("add_new_key"):
                add_key_input = gen_add_key_input(
                    coordinator.pub_key, self.voters[idx], coordinator.deactivate_leaves)
                if add_key_input is None:
                    logger.error(f"Voter {idx} has no deactivate leaf")
                    continue
                if not coordinator.verify_add_key_input(add_key_input):
                    logger.error(f"Add-new-key input of voter {idx} does not verify")
                    continue

                new_keypair = gen_keypair()
                new_idx = coordinator.add_new_key(
                    new_keypair.pub_key, add_key_input.nullifier, add_key_input.status)
            self.voters.append(new_keypair)
            rotated.append((new_idx, new_keypair))
            logger.info(f"Voter {idx} rotated to state index {new_idx}")
        return rotated

    def cast_votes(self, rotated_from: List[int]):
        """One vote per live key; deactivated keys also vote and must be rejected"""
        coordinator = self.coordinator
        round_config = self.config.round_config
        max_weight = max(1, round_config.initial_voice_credits // 4)

        with self.performance_monitor.start_operation("publish_votes"):
            for state_idx, keypair in enumerate(self.voters):
                vo_idx = int(self.rng.integers(0, round_config.max_vote_options))
                weight = int(self.rng.integers(1, max_weight + 1))
                if round_config.is_quadratic_cost:
                    weight = min(weight, int(np.sqrt(round_config.initial_voice_credits)))

                for payload in batch_gen_message(state_idx, keypair, coordinator.pub_key,
                                                 [(vo_idx, weight)]):
                    coordinator.push_message(payload.msg, payload.enc_pub_key)

                if state_idx not in rotated_from:
                    self.expected_votes[vo_idx] += weight

    def process_messages(self):
        coordinator = self.coordinator
        coordinator.end_vote_period()

        while coordinator.phase == RoundPhase.PROCESSING:
            with self.performance_monitor.start_operation("process_messages"):
                result = coordinator.process_messages(gen_random_salt())
            self.witnesses['process'].append(result.witness)
            invalid = {o.position: o.violation.value for o in result.outcomes
                       if o.violation is not None and o.command is not None}
            self.results['processing'].append({
                'batch_start_idx': result.batch_start_idx,
                'batch_end_idx': result.batch_end_idx,
                'valid': result.valid_count,
                'invalid': len(invalid),
                'violations': invalid,
                'new_state_commitment': result.new_state_commitment,
            })

    def process_tally(self):
        coordinator = self.coordinator
        while coordinator.phase == RoundPhase.TALLYING:
            with self.performance_monitor.start_operation("process_tally"):
                result = coordinator.process_tally(gen_random_salt())
            self.witnesses['tally'].append(result.witness)

        self.results['tally'] = [decode_tally_result(v) for v in coordinator.get_tally_results()]
        self.results['final_state_root'] = coordinator.state.state_tree.root
        self.results['final_tally_commitment'] = coordinator.tally_commitment

    def run_round(self, num_voters: int, num_rotations: int) -> Dict[str, Any]:
        round_start = time.time()
        self.sign_up_voters(num_voters)

        rotated_from = list(range(num_rotations))
        if rotated_from:
            self.rotate_keys(rotated_from)

        self.cast_votes(rotated_from)
        self.process_messages()
        self.process_tally()

        self.results['performance_metrics'] = {
            'total_voters': num_voters,
            'rotated_keys': num_rotations,
            'total_messages': len(self.coordinator.messages),
            'total_round_time': time.time() - round_start,
        }
        self.results['integrity_checks'] = self._perform_integrity_checks()
        self.results['audit_log'] = [entry.to_dict() for entry in self.coordinator.get_logs()]
        return self.results

    def _perform_integrity_checks(self) -> Dict[str, bool]:
        checks = {}
        tally_votes = [option['votes'] for option in self.results['tally']]
        checks['tally_matches_expected'] = tally_votes == self.expected_votes
        checks['round_ended'] = self.coordinator.phase == RoundPhase.ENDED
        checks['nullifiers_consumed'] = (
            len(self.coordinator.nullifiers) == self.results['performance_metrics']['rotated_keys'])
        checks['all_checks_passed'] = all(checks.values())
        return checks

    def save_witnesses(self, directory: Path):
        directory.mkdir(parents=True, exist_ok=True)
        for kind, witnesses in self.witnesses.items():
            for i, witness in enumerate(witnesses):
                with open(directory / f"{kind}_{i:03d}.json", 'w') as f:
                    json.dump(stringify(witness), f, indent=2)
        logger.info(f"Witnesses saved to {directory}")


def run_demo(config: SystemConfig, num_voters: int, num_rotations: int,
             seed: Optional[int] = None, save_witness_files: bool = False) -> bool:
    round_config = config.round_config
    print("=" * 80)
    print("AMACI ROUND - KEY ROTATION AND BATCH PROCESSING DEMO")
    print("=" * 80)
    print(f"   State tree: arity {round_config.tree_arity}, depth {round_config.state_tree_depth}"
          f" ({round_config.max_sign_ups} sign-up slots)")
    print(f"   Batch size: {round_config.batch_size}")
    print(f"   Vote options: {round_config.max_vote_options}"
          f" ({'quadratic' if round_config.is_quadratic_cost else 'linear'} cost)")

    if num_voters + num_rotations > round_config.max_sign_ups:
        print(f"\n {num_voters} voters plus {num_rotations} rotations exceed "
              f"{round_config.max_sign_ups} sign-up slots")
        return False

    try:
        orchestrator = RoundOrchestrator(config, seed)
        results = orchestrator.run_round(num_voters, num_rotations)
    except MaciError as e:
        logger.exception(f"Round failed: {e}")
        print(f"\n Round failed: {e}")
        return False

    print("\nFinal Tally:")
    for i, option in enumerate(results['tally']):
        print(f"  Option {i}: {option['votes']} votes")

    print("\nIntegrity Checks:")
    for check, passed in results['integrity_checks'].items():
        status = " PASSED" if passed else " FAILED"
        print(f"  {check}: {status}")

    report_path = config.results_dir / "amaci_round_report.json"
    save_results(results, report_path)

    perf_path = config.results_dir / "performance_report.txt"
    with open(perf_path, "w") as f:
        f.write(create_performance_report(orchestrator.performance_monitor))
    if config.enable_benchmarking:
        orchestrator.performance_monitor.save_metrics(config.results_dir / "metrics.json")

    if save_witness_files:
        orchestrator.save_witnesses(config.results_dir / "witnesses")

    print(f"\nFull results saved to: {report_path}")
    print(f" Performance report: {perf_path}")
    return results['integrity_checks']['all_checks_passed']


def main():
    parser = argparse.ArgumentParser(
        description='AMACI key rotation and batch vote processing engine')
    parser.add_argument('--voters', type=int, default=8,
                        help='Number of voters')
    parser.add_argument('--rotate', type=int, default=2,
                        help='Number of voters that deactivate and add a new key')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for vote choices')
    parser.add_argument('--quadratic', action='store_true',
                        help='Use quadratic vote cost')
    parser.add_argument('--save-witnesses', action='store_true',
                        help='Write every batch witness as JSON')

    args = parser.parse_args()

    config = load_config(Path(args.config))
    if args.quadratic:
        config.round_config.is_quadratic_cost = True
    setup_logging(config.log_level,
                  config.log_dir / f"amaci_{time.strftime('%Y%m%d_%H%M%S')}.log")

    if args.rotate > args.voters:
        parser.error("--rotate cannot exceed --voters")

    success = run_demo(config, args.voters, args.rotate, args.seed, args.save_witnesses)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
