"""
Operation identity for outbound bridge operations.

Each sender owns a monotonically increasing nonce.  The operation id is a
pure function of ``(chain_id, contract_address, sender, nonce)``::

    id = keccak256(chain_id:uint256 | contract:address | sender:bytes32 | nonce:uint256)

Only the nonce is stored, so observers can predict the id of a sender's
next operation before it is submitted.

Usage::

    ids = OperationIdGenerator(chain_id=1, contract_address="0x...")
    ids.next_id(sender)      # peek
    ids.consume(sender)      # returns the same id and advances the nonce
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

from Crypto.Hash import keccak

logger = logging.getLogger("xnft.operation")

UINT256_MAX = (1 << 256) - 1


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest (the Ethereum variant, not NIST SHA3-256)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def address_bytes(address: str) -> bytes:
    """Decode a ``0x``-prefixed 20-byte address."""
    raw = bytes.fromhex(address.removeprefix("0x"))
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}")
    return raw


def compute_operation_id(chain_id: int, contract_address: str,
                         sender: bytes, nonce: int) -> bytes:
    if len(sender) != 32:
        raise ValueError("Sender handle must be 32 bytes")
    if not 0 <= chain_id <= UINT256_MAX or not 0 <= nonce <= UINT256_MAX:
        raise ValueError("chain_id and nonce must fit in uint256")
    preimage = (
        chain_id.to_bytes(32, "big")
        + address_bytes(contract_address)
        + sender
        + nonce.to_bytes(32, "big")
    )
    return keccak256(preimage)


class KeyedLock:
    """One exclusive lock per key.

    State transitions on a single ledger are already serialized; this is
    for hosts that call the bridge from several threads at once.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[Any, List] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, key: Any) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[key]


class OperationIdGenerator:
    """Per-sender nonce counter plus deterministic id derivation."""

    def __init__(self, chain_id: int, contract_address: str,
                 nonces: Dict[bytes, int] = None):
        address_bytes(contract_address)
        self.chain_id = chain_id
        self.contract_address = contract_address
        self._nonces: Dict[bytes, int] = dict(nonces or {})
        self._locks = KeyedLock()

    def current_nonce(self, sender: bytes) -> int:
        return self._nonces.get(sender, 0)

    def next_id(self, sender: bytes) -> bytes:
        return compute_operation_id(
            self.chain_id, self.contract_address, sender,
            self.current_nonce(sender),
        )

    def consume(self, sender: bytes) -> bytes:
        """Return the id ``next_id`` would return, then advance the nonce."""
        with self._locks.hold(sender):
            nonce = self.current_nonce(sender)
            op_id = compute_operation_id(
                self.chain_id, self.contract_address, sender, nonce,
            )
            self._nonces[sender] = nonce + 1
        logger.debug("Operation %s consumed (sender=%s nonce=%d)",
                     op_id.hex()[:16], sender.hex()[-8:], nonce)
        return op_id

    # -- state ---------------------------------------------------------

    def nonces(self) -> Dict[bytes, int]:
        return dict(self._nonces)

    def restore(self, nonces: Dict[bytes, int]) -> None:
        self._nonces = dict(nonces)
