"""
In-memory interchain transport.

The bridge treats message delivery as an external, at-least-once channel
gated by a security check.  This module is the reference channel used by
the tests and examples:

  1. **Envelope**: message header plus body, laid out as
     ``version(1) | nonce(4) | origin(4) | sender(32) | destination(4) |
     recipient(32) | body``; its id is the keccak-256 of that encoding.

  2. **MerkleTree**: every dispatched id is appended to the origin
     mailbox's tree so a relayer can prove a message was dispatched.

  3. **SecurityModule**: the verification gate.  ``TrustedRelayerISM``
     accepts listed relayers only; ``MerkleRootISM`` accepts a message
     only with an inclusion proof against an announced origin root.

  4. **Mailbox**: one per ledger.  ``dispatch()`` on the way out,
     ``process()`` on the way in.  Processing does not deduplicate unless
     ``reject_replays`` is set: delivery is at-least-once.

  5. **InterchainNetwork**: moves envelopes between mailboxes and can
     drop (lose) or redeliver (duplicate) any of them.

Integration
-----------
::

    net = InterchainNetwork()
    net.register(Mailbox(domain=1))
    net.register(Mailbox(domain=2))
    msg_id = net.mailbox(1).dispatch(sender, 2, recipient, body, fee, gas_limit)
    net.deliver(msg_id)
"""

from __future__ import annotations

import abc
import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from .codec import address_to_bytes32
from .errors import (
    BridgeError,
    DecodingError,
    InsufficientFee,
    UnauthorizedError,
)
from .operation import keccak256

logger = logging.getLogger("xnft.transport")

VERSION = 3
_ENVELOPE_HEADER = struct.Struct(">BII32sI32s")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

@dataclass
class Envelope:
    nonce: int
    origin: int
    sender: bytes
    destination: int
    recipient: bytes
    body: bytes
    version: int = VERSION

    def encode(self) -> bytes:
        return _ENVELOPE_HEADER.pack(
            self.version, self.nonce, self.origin, self.sender,
            self.destination, self.recipient,
        ) + self.body

    @classmethod
    def decode(cls, raw: bytes) -> "Envelope":
        if len(raw) < _ENVELOPE_HEADER.size:
            raise DecodingError("Envelope shorter than its header")
        version, nonce, origin, sender, destination, recipient = (
            _ENVELOPE_HEADER.unpack_from(raw, 0)
        )
        return cls(
            nonce=nonce, origin=origin, sender=sender,
            destination=destination, recipient=recipient,
            body=bytes(raw[_ENVELOPE_HEADER.size:]), version=version,
        )

    @property
    def id(self) -> bytes:
        return keccak256(self.encode())


# ---------------------------------------------------------------------------
# Merkle commitment over dispatched ids
# ---------------------------------------------------------------------------

class MerkleTree:
    """Keccak Merkle tree with sibling-path inclusion proofs.

    A proof is a list of ``(sibling, direction)`` pairs where *direction*
    is ``"L"`` if the sibling sits on the left.
    """

    EMPTY_ROOT = keccak256(b"")

    def __init__(self):
        self.leaves: List[bytes] = []

    def insert(self, leaf: bytes) -> int:
        self.leaves.append(leaf)
        return len(self.leaves) - 1

    def __len__(self) -> int:
        return len(self.leaves)

    @staticmethod
    def _hash_pair(a: bytes, b: bytes) -> bytes:
        return keccak256(a + b)

    @staticmethod
    def compute_root(leaves: List[bytes]) -> bytes:
        if not leaves:
            return MerkleTree.EMPTY_ROOT
        layer = list(leaves)
        while len(layer) > 1:
            if len(layer) % 2 == 1:
                layer.append(layer[-1])
            layer = [
                MerkleTree._hash_pair(layer[i], layer[i + 1])
                for i in range(0, len(layer), 2)
            ]
        return layer[0]

    @staticmethod
    def generate_proof(leaves: List[bytes], index: int) -> List[Tuple[bytes, str]]:
        if not leaves or index < 0 or index >= len(leaves):
            return []
        layer = list(leaves)
        proof: List[Tuple[bytes, str]] = []
        idx = index
        while len(layer) > 1:
            if len(layer) % 2 == 1:
                layer.append(layer[-1])
            sibling = idx ^ 1
            proof.append((layer[sibling], "L" if sibling < idx else "R"))
            layer = [
                MerkleTree._hash_pair(layer[i], layer[i + 1])
                for i in range(0, len(layer), 2)
            ]
            idx //= 2
        return proof

    @staticmethod
    def verify_proof(leaf: bytes, proof: List[Tuple[bytes, str]],
                     expected_root: bytes) -> bool:
        current = leaf
        for sibling, direction in proof:
            if direction == "L":
                current = MerkleTree._hash_pair(sibling, current)
            else:
                current = MerkleTree._hash_pair(current, sibling)
        return current == expected_root

    def root(self) -> bytes:
        return self.compute_root(self.leaves)

    def proof(self, index: int) -> List[Tuple[bytes, str]]:
        return self.generate_proof(self.leaves, index)


# ---------------------------------------------------------------------------
# Security modules
# ---------------------------------------------------------------------------

@dataclass
class DeliveryMetadata:
    """What the relayer presents alongside an envelope."""
    relayer: str = ""
    root: bytes = b""
    proof: List[Tuple[bytes, str]] = field(default_factory=list)


class SecurityModule(abc.ABC):
    @abc.abstractmethod
    def verify(self, envelope: Envelope, metadata: DeliveryMetadata) -> bool: ...


class TrustedRelayerISM(SecurityModule):
    """Accepts messages carried by one of the listed relayers."""

    def __init__(self, relayers=()):
        self.relayers: Set[str] = set(relayers)

    def verify(self, envelope: Envelope, metadata: DeliveryMetadata) -> bool:
        return metadata.relayer in self.relayers


class MerkleRootISM(SecurityModule):
    """Accepts messages proven against a root announced for their origin."""

    def __init__(self):
        # origin domain -> announced roots
        self._roots: Dict[int, Set[bytes]] = {}

    def announce_root(self, origin: int, root: bytes) -> None:
        self._roots.setdefault(origin, set()).add(root)
        logger.debug("ISM: root %s announced for origin %d", root.hex()[:16], origin)

    def verify(self, envelope: Envelope, metadata: DeliveryMetadata) -> bool:
        if metadata.root not in self._roots.get(envelope.origin, set()):
            return False
        return MerkleTree.verify_proof(envelope.id, metadata.proof, metadata.root)


# ---------------------------------------------------------------------------
# Mailbox
# ---------------------------------------------------------------------------

class Mailbox:
    """Dispatch and process endpoint of one ledger."""

    def __init__(self, domain: int, address: str = "",
                 default_ism: Optional[SecurityModule] = None,
                 default_gas_price: int = 1,
                 reject_replays: bool = False):
        self.domain = domain
        self.address = address or "0x" + f"{domain:040x}"
        self.default_ism = default_ism
        self.default_gas_price = default_gas_price
        self.reject_replays = reject_replays

        self._nonce = 0
        self._tree = MerkleTree()
        # message id -> envelope, in dispatch order
        self._outbox: Dict[bytes, Envelope] = {}
        self._leaf_index: Dict[bytes, int] = {}
        self._hooks: Dict[bytes, str] = {}
        # message id -> number of successful deliveries
        self._delivered: Dict[bytes, int] = {}
        # bytes32 address -> recipient object with handle()
        self._recipients: Dict[bytes, Any] = {}
        self._gas_prices: Dict[int, int] = {}
        self.fees_collected: int = 0

    # -- Recipients & pricing ----------------------------------------------

    def register_recipient(self, address: str, recipient: Any) -> None:
        self._recipients[address_to_bytes32(address)] = recipient

    def set_gas_price(self, destination: int, price: int) -> None:
        self._gas_prices[destination] = price

    def quote_dispatch(self, destination: int, gas_limit: int) -> int:
        return gas_limit * self._gas_prices.get(destination, self.default_gas_price)

    # -- Outbound ----------------------------------------------------------

    def dispatch(self, sender: str, destination: int, recipient: bytes,
                 body: bytes, fee: int = 0, gas_limit: int = 0,
                 hook: str = "") -> bytes:
        required = self.quote_dispatch(destination, gas_limit)
        if fee < required:
            raise InsufficientFee(fee, required)

        envelope = Envelope(
            nonce=self._nonce,
            origin=self.domain,
            sender=address_to_bytes32(sender),
            destination=destination,
            recipient=recipient,
            body=bytes(body),
        )
        msg_id = envelope.id
        self._nonce += 1
        self._outbox[msg_id] = envelope
        self._leaf_index[msg_id] = self._tree.insert(msg_id)
        if hook:
            self._hooks[msg_id] = hook
        self.fees_collected += fee

        logger.info("Mailbox %d: dispatched %s (nonce=%d) -> %d",
                    self.domain, msg_id.hex()[:16], envelope.nonce, destination)
        return msg_id

    def outbound(self, msg_id: bytes) -> Optional[Envelope]:
        return self._outbox.get(msg_id)

    def outbound_ids(self) -> List[bytes]:
        return list(self._outbox)

    def hook_for(self, msg_id: bytes) -> str:
        return self._hooks.get(msg_id, "")

    def root(self) -> bytes:
        return self._tree.root()

    def metadata_for(self, msg_id: bytes, relayer: str = "") -> DeliveryMetadata:
        index = self._leaf_index[msg_id]
        return DeliveryMetadata(relayer=relayer, root=self._tree.root(),
                                proof=self._tree.proof(index))

    # -- Inbound -----------------------------------------------------------

    def delivered(self, msg_id: bytes) -> int:
        return self._delivered.get(msg_id, 0)

    def process(self, envelope: Envelope, metadata: DeliveryMetadata) -> None:
        """Verify *envelope* and hand its body to the recipient.

        Any exception raised by verification or by the recipient
        propagates to the relayer and the message is not counted as
        delivered.
        """
        msg_id = envelope.id
        if envelope.destination != self.domain:
            raise UnauthorizedError(
                f"Message for domain {envelope.destination} delivered to {self.domain}"
            )
        if self.reject_replays and self._delivered.get(msg_id):
            raise UnauthorizedError(f"Message {msg_id.hex()[:16]} already delivered")

        recipient = self._recipients.get(envelope.recipient)
        if recipient is None:
            raise UnauthorizedError(f"No recipient registered at {envelope.recipient.hex()}")

        ism = getattr(recipient, "interchain_security_module", None) or self.default_ism
        if ism is not None and not ism.verify(envelope, metadata):
            logger.warning("Mailbox %d: security check rejected %s from %d",
                           self.domain, msg_id.hex()[:16], envelope.origin)
            raise UnauthorizedError("Security module rejected the message")

        recipient.handle(self.address, envelope.origin, envelope.sender, envelope.body)
        self._delivered[msg_id] = self._delivered.get(msg_id, 0) + 1
        logger.info("Mailbox %d: processed %s from %d (delivery #%d)",
                    self.domain, msg_id.hex()[:16], envelope.origin,
                    self._delivered[msg_id])


# ---------------------------------------------------------------------------
# Network: relaying between mailboxes
# ---------------------------------------------------------------------------

class InterchainNetwork:
    """Relays dispatched envelopes between registered mailboxes."""

    def __init__(self, relayer: str = "relayer"):
        self.relayer = relayer
        self._mailboxes: Dict[int, Mailbox] = {}
        self._dropped: Set[bytes] = set()
        self._relayed: Set[bytes] = set()

    def register(self, mailbox: Mailbox) -> Mailbox:
        if mailbox.domain in self._mailboxes:
            raise ValueError(f"Domain {mailbox.domain} already registered")
        self._mailboxes[mailbox.domain] = mailbox
        logger.info("Network: registered mailbox for domain %d", mailbox.domain)
        return mailbox

    def mailbox(self, domain: int) -> Mailbox:
        try:
            return self._mailboxes[domain]
        except KeyError:
            raise ValueError(f"Domain {domain} not registered") from None

    def _locate(self, msg_id: bytes) -> Tuple[Mailbox, Envelope]:
        for mailbox in self._mailboxes.values():
            envelope = mailbox.outbound(msg_id)
            if envelope is not None:
                return mailbox, envelope
        raise ValueError(f"Unknown message {msg_id.hex()}")

    def pending(self) -> List[bytes]:
        """Dispatched ids that have been neither relayed nor dropped."""
        return [
            msg_id
            for mailbox in self._mailboxes.values()
            for msg_id in mailbox.outbound_ids()
            if msg_id not in self._relayed and msg_id not in self._dropped
        ]

    def drop(self, msg_id: bytes) -> None:
        """Lose a message: it will never be delivered by ``deliver_all``."""
        self._locate(msg_id)
        self._dropped.add(msg_id)
        logger.warning("Network: dropped %s", msg_id.hex()[:16])

    def deliver(self, msg_id: bytes) -> None:
        """Deliver (or redeliver) one message.  Failures propagate."""
        origin, envelope = self._locate(msg_id)
        dest = self.mailbox(envelope.destination)
        metadata = origin.metadata_for(msg_id, relayer=self.relayer)
        self._relayed.add(msg_id)
        dest.process(envelope, metadata)

    def deliver_all(self) -> List[Tuple[bytes, bool, str]]:
        """Deliver every pending message.

        Returns ``(msg_id, accepted, reason)`` for each one.
        """
        results: List[Tuple[bytes, bool, str]] = []
        for msg_id in self.pending():
            try:
                self.deliver(msg_id)
            except (BridgeError, ValueError, PermissionError) as e:
                logger.warning("Network: delivery of %s failed: %s", msg_id.hex()[:16], e)
                results.append((msg_id, False, str(e)))
            else:
                results.append((msg_id, True, ""))
        return results
