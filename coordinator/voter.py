"""
Voter-side payload builders: vote and deactivate messages, and the
add-new-key input derived from a published deactivation.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from maci_crypto.babyjub import Point
from maci_crypto.eddsa import Keypair, gen_keypair
from maci_crypto.field import compute_input_hash, gen_random_babyjub_value
from maci_crypto.key_exchange import gen_ecdh_shared_key, poseidon_encrypt
from maci_crypto.lean_tree import LeanTree, MerkleProof
from maci_crypto.nullifier import nullifier as derive_nullifier
from maci_crypto.poseidon import hash2, hash3
from maci_crypto.status_cipher import StatusCiphertext, rerandomize

from .command import pack_element
from .deactivate import deactivate_leaf_hash

logger = logging.getLogger(__name__)


@dataclass
class VotePayload:
    msg: List[int]
    enc_pub_key: Point

    def to_dict(self) -> Dict[str, Any]:
        return {'msg': list(self.msg), 'enc_pub_key': list(self.enc_pub_key)}


@dataclass
class AddKeyInput:
    input_hash: int
    coord_pub_key: Point
    deactivate_root: int
    deactivate_index: int
    deactivate_leaf: int
    c1: Point
    c2: Point
    random_val: int
    d1: Point
    d2: Point
    deactivate_proof: MerkleProof
    nullifier: int
    old_private_key: int

    @property
    def status(self) -> StatusCiphertext:
        return StatusCiphertext(c1=self.d1, c2=self.d2)

    def to_witness(self) -> Dict[str, Any]:
        return {
            'inputHash': self.input_hash,
            'coordPubKey': list(self.coord_pub_key),
            'deactivateRoot': self.deactivate_root,
            'deactivateIndex': self.deactivate_index,
            'deactivateLeaf': self.deactivate_leaf,
            'c1': list(self.c1),
            'c2': list(self.c2),
            'randomVal': self.random_val,
            'd1': list(self.d1),
            'd2': list(self.d2),
            'deactivateLeafPathElements': list(self.deactivate_proof.siblings),
            'nullifier': self.nullifier,
            'oldPrivateKey': self.old_private_key,
        }


def gen_message(state_idx: int, sign_keypair: Keypair, coord_pub_key: Sequence[int],
                enc_keypair: Keypair, nonce: int, vo_idx: int, new_votes: int,
                is_last_cmd: bool, salt: Optional[int] = None) -> List[int]:
    """Sign and encrypt one command; the last command of a plan clears the key"""
    packed = pack_element(nonce, state_idx, vo_idx, new_votes, salt)

    new_pub_key = (0, 0) if is_last_cmd else sign_keypair.pub_key
    msg_hash = hash3([packed, new_pub_key[0], new_pub_key[1]])
    signature = sign_keypair.sign(msg_hash)

    command = [packed, new_pub_key[0], new_pub_key[1],
               signature.R8[0], signature.R8[1], signature.S]
    shared_key = gen_ecdh_shared_key(enc_keypair.priv_key, coord_pub_key)
    return poseidon_encrypt(command, shared_key, 0)


def batch_gen_message(state_idx: int, keypair: Keypair, coord_pub_key: Sequence[int],
                      plan: Sequence[Tuple[int, int]]) -> List[VotePayload]:
    """Messages for a plan of (vo_idx, new_votes), newest first"""
    payload = []
    for i in range(len(plan) - 1, -1, -1):
        vo_idx, new_votes = plan[i]
        enc_account = gen_keypair()
        msg = gen_message(state_idx, keypair, coord_pub_key, enc_account,
                          i + 1, vo_idx, new_votes, i == len(plan) - 1)
        payload.append(VotePayload(msg=msg, enc_pub_key=enc_account.pub_key))
    return payload


def build_deactivate_payload(state_idx: int, keypair: Keypair,
                             coord_pub_key: Sequence[int]) -> VotePayload:
    return batch_gen_message(state_idx, keypair, coord_pub_key, [(0, 0)])[0]


def find_deactivate_leaf(coord_pub_key: Sequence[int], old_keypair: Keypair,
                         deactivates: Sequence[Sequence[int]]) -> int:
    """Index of the leaf bound to old_keypair, -1 when none is"""
    shared_key_hash = hash2(list(gen_ecdh_shared_key(old_keypair.priv_key, coord_pub_key)))
    for idx, d in enumerate(deactivates):
        if d[4] == shared_key_hash:
            return idx
    return -1


def gen_add_key_input(coord_pub_key: Sequence[int], old_keypair: Keypair,
                      deactivates: Sequence[Sequence[int]],
                      random_val: Optional[int] = None) -> Optional[AddKeyInput]:
    """Rerandomized status, nullifier and membership proof for a new key"""
    deactivate_idx = find_deactivate_leaf(coord_pub_key, old_keypair, deactivates)
    if deactivate_idx < 0:
        logger.info("No deactivate leaf matches the old key")
        return None

    if random_val is None:
        random_val = gen_random_babyjub_value()

    d_leaf = deactivates[deactivate_idx]
    c1 = (d_leaf[0], d_leaf[1])
    c2 = (d_leaf[2], d_leaf[3])
    rerandomized = rerandomize(coord_pub_key, StatusCiphertext(c1=c1, c2=c2), random_val)
    d1, d2 = rerandomized.c1, rerandomized.c2

    nullifier = derive_nullifier(old_keypair.priv_key)

    tree = LeanTree(deactivate_leaf_hash(d) for d in deactivates)
    proof = tree.generate_proof(deactivate_idx)

    coord_pub_key_hash = hash2(list(coord_pub_key))
    input_hash = compute_input_hash([
        tree.root,
        coord_pub_key_hash,
        nullifier,
        d1[0], d1[1], d2[0], d2[1],
    ])

    return AddKeyInput(
        input_hash=input_hash,
        coord_pub_key=(coord_pub_key[0], coord_pub_key[1]),
        deactivate_root=tree.root,
        deactivate_index=deactivate_idx,
        deactivate_leaf=deactivate_leaf_hash(d_leaf),
        c1=c1,
        c2=c2,
        random_val=random_val,
        d1=d1,
        d2=d2,
        deactivate_proof=proof,
        nullifier=nullifier,
        old_private_key=old_keypair.formatted_priv_key,
    )
