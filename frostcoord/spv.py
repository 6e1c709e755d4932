"""
Boundary with the SPV engine. The coordinator never parses block headers, it
only asks whether a funding transaction is included and buried deep enough.
"""

from collections import namedtuple
from typing import Protocol

FundingProof = namedtuple("FundingProof", "block_hash txid proof")


class SpvClient(Protocol):
    def verify_inclusion(self, block_hash: bytes, txid: bytes, proof: bytes) -> bool:
        ...

    def is_mature(self, block_hash: bytes) -> bool:
        ...


def check_funding(client: SpvClient, funding: FundingProof) -> bool:
    block_hash, txid, proof = funding
    return bool(client.verify_inclusion(block_hash, txid, proof)) and bool(client.is_mature(block_hash))
