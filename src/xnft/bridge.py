"""
Cross-ledger NFT bridge (transfer orchestrator).

Ties the token capability, the operation-id generator, the wire codec
and the fractional distributor to a mailbox:

  - **transfer_whole**: escrow whole assets, dispatch ``SendWhole``.
  - **transfer_split**: escrow one asset, dispatch ``SendSplit``; the
    remote side mints it into custody and fans its backing value out.
  - **handle**: inbound entry point, callable only by the mailbox, and
    only for messages sent by the router enrolled for the origin domain.

Each ledger hands out NFT ids from its own range, so an asset that
crosses gets a new local id.  The reroll table remembers the pairing in
both directions::

    ("in",  origin, remote_id)      -> local_id
    ("out", destination, local_id)  -> remote_id
    ("frac", origin, remote_id)     -> local_id   (value already split)

On send, a mirrored asset travels under its remote id; on receive, an id
from the local range is released from escrow and anything else is
resolved through the table, so a round trip restores the original id.

Lifecycle of an outbound operation::

    REQUESTED -> ESCROWED -> DISPATCHED  ...  (remote) APPLIED

Nothing flows back to the origin: a lost message leaves the asset in
escrow.

Each operation id is applied at most once.  The set of applied ids is
persisted, so a redelivered message is refused even after the asset it
moved has travelled back.

Every public mutating call runs as one transaction: token and bridge
state are snapshotted and restored if anything raises.

Integration
-----------
::

    bridge = NFTBridge(BridgeConfig(domain=1, owner=admin), token, mailbox)
    bridge.enroll_remote_router(admin, 2, remote_router)
    bridge.set_destination_gas(admin, 2, MessageType.SEND_WHOLE, 200_000)
    op_id = bridge.transfer_whole(alice, 2, recipient, [7], value=fee)
"""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .codec import (
    MAX_ELEMENTS,
    MessageType,
    SendSplit,
    SendWhole,
    address_to_bytes32,
    bytes32_to_address,
    decode_split,
    decode_whole,
    encode_split,
    encode_whole,
    message_type,
)
from .config import BridgeConfig
from .distributor import FractionalDistributor, check_split
from .errors import (
    AssetAlreadyLive,
    BridgeError,
    EncodingError,
    GasLimitNotSet,
    InvariantViolation,
    NotMailboxError,
    NotOwnerError,
    OperationAlreadyApplied,
    ReentrantCall,
    UnenrolledRouterError,
    WholeUnitMismatch,
)
from .events import (
    BridgeEvent,
    GasSet,
    HookSet,
    IsmSet,
    OwnershipTransferred,
    ReceivedNFT,
    ReceivedNFTPartial,
    RouterEnrolled,
    RouterUnenrolled,
    TransferRemoteNFT,
    TransferRemoteNFTPartial,
    WholeUnitMigrated,
)
from .operation import KeyedLock, OperationIdGenerator
from .storage import BridgeStore
from .token import TokenCapability
from .transport import Mailbox, SecurityModule

logger = logging.getLogger("xnft.bridge")

ZERO_BYTES32 = b"\x00" * 32


class OperationState(Enum):
    REQUESTED = auto()
    ESCROWED = auto()
    DISPATCHED = auto()
    APPLIED = auto()


@dataclass
class Operation:
    """Local record of one outbound (or applied inbound) operation."""
    operation_id: bytes
    kind: MessageType
    sender: bytes
    domain: int
    asset_ids: List[int] = field(default_factory=list)
    recipients: List[bytes] = field(default_factory=list)
    amounts: List[int] = field(default_factory=list)
    state: OperationState = OperationState.REQUESTED
    message_id: bytes = b""
    fee: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": "0x" + self.operation_id.hex(),
            "kind": self.kind.name,
            "sender": "0x" + self.sender.hex(),
            "domain": self.domain,
            "asset_ids": list(self.asset_ids),
            "recipients": ["0x" + r.hex() for r in self.recipients],
            "amounts": list(self.amounts),
            "state": self.state.name,
            "message_id": "0x" + self.message_id.hex(),
            "fee": self.fee,
        }


class NFTBridge:
    """Moves hybrid-token NFTs between ledgers over a mailbox."""

    def __init__(
        self,
        config: BridgeConfig,
        token: TokenCapability,
        mailbox: Mailbox,
        store: Optional[BridgeStore] = None,
    ):
        self.config = config
        self.address = config.address
        self.domain = config.domain
        self.token = token
        self.mailbox = mailbox
        self._store = store or BridgeStore.from_config(config)

        self._owner: str = config.owner
        self._whole_unit: int = config.whole_unit
        self._whole_unit_version: int = config.whole_unit_version
        # domain -> enrolled remote router (bytes32)
        self._routers: Dict[int, bytes] = {}
        # domain -> action -> gas limit
        self._gas: Dict[int, Dict[int, int]] = copy.deepcopy(config.destination_gas)
        # (direction, domain, source id) -> mapped id
        self._reroll: Dict[Tuple[str, int, int], int] = {}
        self.hook: str = ""
        self.interchain_security_module: Optional[SecurityModule] = None

        self.ids = OperationIdGenerator(config.chain_id, config.address)
        self.distributor = FractionalDistributor(
            token, custodian=config.address, holding=config.holding,
            whole_unit=self._whole_unit,
        )

        # operation id -> record (outbound)
        self._operations: Dict[bytes, Operation] = {}
        # operation id -> record (inbound, applied here)
        self._applied: Dict[bytes, Operation] = {}
        # operation id -> origin domain, for every inbound operation ever applied
        self._applied_ids: Dict[bytes, int] = {}
        self.events: List[BridgeEvent] = []

        self._lock = threading.RLock()
        self._mapping_locks = KeyedLock()
        self._entered = False

        self._load()
        if token.whole_unit() != self._whole_unit:
            logger.warning(
                "Bridge %s: token unit %d differs from configured whole unit %d (v%d)",
                self.address, token.whole_unit(), self._whole_unit,
                self._whole_unit_version,
            )
        mailbox.register_recipient(self.address, self)
        logger.info("Bridge %s deployed on domain %d", self.address, self.domain)

    # ── Persistence ───────────────────────────────────────────────

    def _load(self) -> None:
        if self._store.is_empty():
            self._persist()
            return
        state = self._store.load()
        self.ids.restore(state["nonces"])
        self._reroll = state["reroll"]
        self._routers = state["routers"]
        self._gas = state["gas"]
        self._applied_ids = state["applied"]
        meta = state["meta"]
        self._owner = meta.get("owner", self._owner)
        self._whole_unit = meta.get("whole_unit", self._whole_unit)
        self._whole_unit_version = meta.get("whole_unit_version", self._whole_unit_version)
        self.hook = meta.get("hook", "")
        self.distributor.whole_unit = self._whole_unit
        logger.info("Bridge %s: restored %d nonces, %d reroll entries, %d routers",
                    self.address, len(state["nonces"]), len(self._reroll),
                    len(self._routers))

    def _persist(self) -> None:
        self._store.save({
            "nonces": self.ids.nonces(),
            "reroll": self._reroll,
            "routers": self._routers,
            "gas": self._gas,
            "applied": self._applied_ids,
            "meta": {
                "owner": self._owner,
                "whole_unit": self._whole_unit,
                "whole_unit_version": self._whole_unit_version,
                "hook": self.hook,
            },
        })

    # ── Transactions ──────────────────────────────────────────────

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "nonces": self.ids.nonces(),
            "reroll": dict(self._reroll),
            "routers": dict(self._routers),
            "gas": copy.deepcopy(self._gas),
            "operations": copy.deepcopy(self._operations),
            "applied": copy.deepcopy(self._applied),
            "applied_ids": dict(self._applied_ids),
            "owner": self._owner,
            "whole_unit": self._whole_unit,
            "whole_unit_version": self._whole_unit_version,
            "hook": self.hook,
            "ism": self.interchain_security_module,
            "events": len(self.events),
        }

    def _restore(self, snap: Dict[str, Any]) -> None:
        self.ids.restore(snap["nonces"])
        self._reroll = snap["reroll"]
        self._routers = snap["routers"]
        self._gas = snap["gas"]
        self._operations = snap["operations"]
        self._applied = snap["applied"]
        self._applied_ids = snap["applied_ids"]
        self._owner = snap["owner"]
        self._whole_unit = snap["whole_unit"]
        self._whole_unit_version = snap["whole_unit_version"]
        self.distributor.whole_unit = snap["whole_unit"]
        self.hook = snap["hook"]
        self.interchain_security_module = snap["ism"]
        del self.events[snap["events"]:]

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            if self._entered:
                raise ReentrantCall(f"Reentrant call to bridge {self.address}")
            self._entered = True
            token_snap = self.token.snapshot()
            state_snap = self._snapshot()
            try:
                yield
            except Exception:
                self.token.restore(token_snap)
                self._restore(state_snap)
                raise
            else:
                self._persist()
            finally:
                self._entered = False

    def _emit(self, event: BridgeEvent) -> None:
        self.events.append(event)

    # ── Guards ────────────────────────────────────────────────────

    def _only_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise NotOwnerError(f"{caller} is not the bridge owner")

    def _check_whole_unit(self) -> None:
        actual = self.token.whole_unit()
        if actual != self._whole_unit:
            raise WholeUnitMismatch(
                f"Token unit {actual} differs from configured whole unit "
                f"{self._whole_unit} (v{self._whole_unit_version}); migrate first"
            )

    def _router(self, domain: int) -> bytes:
        router = self._routers.get(domain)
        if router is None:
            raise UnenrolledRouterError(f"No router enrolled for domain {domain}")
        return router

    def _gas_limit(self, domain: int, action: int) -> int:
        gas = self._gas.get(domain, {}).get(int(action))
        if not gas:
            raise GasLimitNotSet(domain, int(action))
        return gas

    # ── Views ─────────────────────────────────────────────────────

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def whole_unit(self) -> int:
        return self._whole_unit

    @property
    def whole_unit_version(self) -> int:
        return self._whole_unit_version

    def routers(self, domain: int) -> bytes:
        return self._routers.get(domain, ZERO_BYTES32)

    def domains(self) -> List[int]:
        return sorted(self._routers)

    def destination_gas(self, domain: int, action: int) -> int:
        return self._gas.get(domain, {}).get(int(action), 0)

    def operation_nonce(self, sender: bytes) -> int:
        return self.ids.current_nonce(sender)

    def next_operation_id(self, sender: bytes) -> bytes:
        return self.ids.next_id(sender)

    def mapped_id(self, origin: int, remote_id: int) -> Optional[int]:
        """Local id assigned to *remote_id* arriving from *origin*."""
        return self._reroll.get(("in", origin, remote_id))

    def remote_id(self, destination: int, local_id: int) -> Optional[int]:
        """Id a local mirror travels under when sent to *destination*."""
        return self._reroll.get(("out", destination, local_id))

    def get_operation(self, operation_id: bytes) -> Optional[Operation]:
        return self._operations.get(operation_id) or self._applied.get(operation_id)

    def get_operations(self) -> List[Dict[str, Any]]:
        return [op.to_dict() for op in self._operations.values()]

    def get_bridge_info(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "domain": self.domain,
            "owner": self._owner,
            "whole_unit": self._whole_unit,
            "whole_unit_version": self._whole_unit_version,
            "routers": {d: "0x" + r.hex() for d, r in self._routers.items()},
            "reroll_entries": len(self._reroll),
            "dispatched": len(self._operations),
            "applied": len(self._applied_ids),
        }

    # ── Quotes ────────────────────────────────────────────────────

    def quote_gas_payment(self, destination: int, action: int) -> int:
        return self.mailbox.quote_dispatch(destination, self._gas_limit(destination, action))

    def quote(self, destination: int, recipient: bytes, asset_ids: List[int]) -> int:
        self._router(destination)
        return self.quote_gas_payment(destination, MessageType.SEND_WHOLE)

    def quote_split(self, destination: int, asset_id: int,
                    recipients: List[bytes], amounts: List[int]) -> int:
        self._router(destination)
        return self.quote_gas_payment(destination, MessageType.SEND_SPLIT)

    # ── Outbound ──────────────────────────────────────────────────

    def _wire_id(self, destination: int, asset_id: int) -> int:
        return self._reroll.get(("out", destination, asset_id), asset_id)

    def transfer_whole(self, caller: str, destination: int, recipient: bytes,
                       asset_ids: List[int], value: int = 0) -> bytes:
        """Escrow *asset_ids* and send them to *recipient* on *destination*.

        Returns the operation id.
        """
        with self._transaction():
            router = self._router(destination)
            self._check_whole_unit()
            if not asset_ids:
                raise InvariantViolation("No assets to transfer")
            if len(asset_ids) > MAX_ELEMENTS:
                raise EncodingError(f"Too many asset ids: {len(asset_ids)} > {MAX_ELEMENTS}")
            if len(set(asset_ids)) != len(asset_ids):
                raise InvariantViolation("Duplicate asset ids")

            sender = address_to_bytes32(caller)
            op = Operation(operation_id=b"", kind=MessageType.SEND_WHOLE,
                           sender=sender, domain=destination,
                           asset_ids=list(asset_ids), recipients=[recipient])

            wire_ids = []
            for asset_id in asset_ids:
                self.token.lock(self.address, caller, asset_id)
                wire_ids.append(self._wire_id(destination, asset_id))
            op.state = OperationState.ESCROWED

            op.operation_id = self.ids.consume(sender)
            body = encode_whole(SendWhole(
                operation_id=op.operation_id, recipient=recipient, asset_ids=wire_ids,
            ))
            op.message_id = self.mailbox.dispatch(
                self.address, destination, router, body, fee=value,
                gas_limit=self._gas_limit(destination, MessageType.SEND_WHOLE),
                hook=self.hook,
            )
            op.fee = value
            op.state = OperationState.DISPATCHED
            self._operations[op.operation_id] = op
            self._emit(TransferRemoteNFT(
                op.operation_id, destination, recipient, op.message_id,
                list(asset_ids), self.address,
            ))

        logger.info("Bridge %s: transfer_whole op=%s msg=%s assets=%s -> %d",
                    self.address, op.operation_id.hex()[:16],
                    op.message_id.hex()[:16], asset_ids, destination)
        return op.operation_id

    def transfer_split(self, caller: str, destination: int, asset_id: int,
                       recipients: List[bytes], amounts: List[int],
                       value: int = 0) -> bytes:
        """Escrow *asset_id* and have its value split on *destination*."""
        with self._transaction():
            router = self._router(destination)
            self._check_whole_unit()
            check_split(amounts, self._whole_unit, recipients)
            if len(recipients) > MAX_ELEMENTS:
                raise EncodingError(f"Too many recipients: {len(recipients)} > {MAX_ELEMENTS}")

            sender = address_to_bytes32(caller)
            op = Operation(operation_id=b"", kind=MessageType.SEND_SPLIT,
                           sender=sender, domain=destination, asset_ids=[asset_id],
                           recipients=list(recipients), amounts=list(amounts))

            self.token.lock(self.address, caller, asset_id)
            op.state = OperationState.ESCROWED

            op.operation_id = self.ids.consume(sender)
            body = encode_split(SendSplit(
                operation_id=op.operation_id,
                asset_id=self._wire_id(destination, asset_id),
                recipients=list(recipients),
                amounts=list(amounts),
            ))
            op.message_id = self.mailbox.dispatch(
                self.address, destination, router, body, fee=value,
                gas_limit=self._gas_limit(destination, MessageType.SEND_SPLIT),
                hook=self.hook,
            )
            op.fee = value
            op.state = OperationState.DISPATCHED
            self._operations[op.operation_id] = op
            self._emit(TransferRemoteNFTPartial(
                op.operation_id, destination, op.message_id, asset_id,
                list(recipients), list(amounts), self.address,
            ))

        logger.info("Bridge %s: transfer_split op=%s msg=%s asset=%d across %d -> %d",
                    self.address, op.operation_id.hex()[:16],
                    op.message_id.hex()[:16], asset_id, len(recipients), destination)
        return op.operation_id

    # ── Inbound ───────────────────────────────────────────────────

    def handle(self, caller: str, origin: int, sender: bytes, body: bytes) -> None:
        """Apply a message delivered by the mailbox."""
        if caller != self.mailbox.address:
            raise NotMailboxError(f"{caller} is not the mailbox")
        try:
            with self._transaction():
                enrolled = self._routers.get(origin)
                if enrolled is None or enrolled != sender:
                    raise UnenrolledRouterError(
                        f"Sender 0x{sender.hex()} is not the router enrolled for domain {origin}"
                    )
                self._check_whole_unit()
                if message_type(body) == MessageType.SEND_WHOLE:
                    self._handle_whole(origin, body)
                else:
                    self._handle_split(origin, body)
        except (BridgeError, ValueError, PermissionError) as e:
            logger.warning("Bridge %s: rejected message from domain %d: %s",
                           self.address, origin, e)
            raise

    def _handle_whole(self, origin: int, body: bytes) -> None:
        msg = decode_whole(body)
        self._claim(origin, msg.operation_id)
        to = bytes32_to_address(msg.recipient)
        local_ids = []
        for remote_id in msg.asset_ids:
            local_id = self._resolve_inbound(origin, remote_id)
            self._release(origin, remote_id, local_id, to)
            local_ids.append(local_id)

        self._applied[msg.operation_id] = Operation(
            operation_id=msg.operation_id, kind=MessageType.SEND_WHOLE,
            sender=ZERO_BYTES32, domain=origin, asset_ids=local_ids,
            recipients=[msg.recipient], state=OperationState.APPLIED,
        )
        self._emit(ReceivedNFT(msg.operation_id, msg.recipient, local_ids, self.address))
        logger.info("Bridge %s: applied op=%s from %d, assets %s -> %s",
                    self.address, msg.operation_id.hex()[:16], origin,
                    local_ids, to)

    def _handle_split(self, origin: int, body: bytes) -> None:
        msg = decode_split(body)
        self._claim(origin, msg.operation_id)
        check_split(msg.amounts, self._whole_unit, msg.recipients)
        local_id = self._resolve_inbound(origin, msg.asset_id)
        self._release(origin, msg.asset_id, local_id, self.address)
        self.distributor.distribute(
            local_id, [bytes32_to_address(r) for r in msg.recipients], msg.amounts,
        )
        self._reroll[("frac", origin, msg.asset_id)] = local_id

        self._applied[msg.operation_id] = Operation(
            operation_id=msg.operation_id, kind=MessageType.SEND_SPLIT,
            sender=ZERO_BYTES32, domain=origin, asset_ids=[local_id],
            recipients=list(msg.recipients), amounts=list(msg.amounts),
            state=OperationState.APPLIED,
        )
        self._emit(ReceivedNFTPartial(
            msg.operation_id, local_id, msg.recipients, msg.amounts, self.address,
        ))
        logger.info("Bridge %s: applied split op=%s from %d, asset %d across %d",
                    self.address, msg.operation_id.hex()[:16], origin,
                    local_id, len(msg.recipients))

    def _claim(self, origin: int, operation_id: bytes) -> None:
        """Record *operation_id* as applied; each operation applies once."""
        if operation_id in self._applied_ids:
            raise OperationAlreadyApplied(operation_id, self._applied_ids[operation_id])
        self._applied_ids[operation_id] = origin

    def _resolve_inbound(self, origin: int, remote_id: int) -> int:
        """Look up or create the local id for *remote_id* from *origin*."""
        if self.token.in_range(remote_id):
            # one of ours coming home
            return remote_id
        with self._mapping_locks.hold((origin, remote_id)):
            local_id = self._reroll.get(("in", origin, remote_id))
            if local_id is None:
                local_id = self.token.allocate_id(self.address)
                self._reroll[("in", origin, remote_id)] = local_id
                self._reroll[("out", origin, local_id)] = remote_id
                logger.debug("Bridge %s: reroll %d@%d -> %d",
                             self.address, remote_id, origin, local_id)
        return local_id

    def _release(self, origin: int, remote_id: int, local_id: int, to: str) -> None:
        """Mint *local_id* to *to*, or unlock it if it sits in escrow."""
        if ("frac", origin, remote_id) in self._reroll:
            raise AssetAlreadyLive(
                f"Asset {remote_id} from domain {origin} was already split as {local_id}"
            )
        if not self.token.exists(local_id):
            if self.token.in_range(remote_id):
                raise InvariantViolation(f"Asset {local_id} is not held in escrow")
            self.token.mint(self.address, to, local_id)
            return
        holder = self.token.owner_of(local_id)
        if holder != self.address:
            raise AssetAlreadyLive(
                f"Asset {remote_id} from domain {origin} is already live as {local_id}"
            )
        if to != self.address:
            self.token.unlock(self.address, local_id, to)

    # ── Administration ────────────────────────────────────────────

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._transaction():
            self._only_owner(caller)
            if not new_owner:
                raise InvariantViolation("New owner is empty")
            previous, self._owner = self._owner, new_owner
            self._emit(OwnershipTransferred(previous, new_owner, self.address))
        logger.info("Bridge %s: ownership %s -> %s", self.address, previous, new_owner)

    def enroll_remote_router(self, caller: str, domain: int, router: bytes) -> None:
        self.enroll_remote_routers(caller, [domain], [router])

    def enroll_remote_routers(self, caller: str, domains: List[int],
                              routers: List[bytes]) -> None:
        with self._transaction():
            self._only_owner(caller)
            if len(domains) != len(routers):
                raise InvariantViolation("Domains and routers length mismatch")
            for domain, router in zip(domains, routers):
                if len(router) != 32:
                    raise InvariantViolation("Router handle must be 32 bytes")
                self._routers[domain] = bytes(router)
                self._emit(RouterEnrolled(domain, router, self.address))
                logger.info("Bridge %s: enrolled router 0x%s for domain %d",
                            self.address, router.hex(), domain)

    def unenroll_remote_router(self, caller: str, domain: int) -> None:
        self.unenroll_remote_routers(caller, [domain])

    def unenroll_remote_routers(self, caller: str, domains: List[int]) -> None:
        with self._transaction():
            self._only_owner(caller)
            for domain in domains:
                self._router(domain)
                del self._routers[domain]
                self._emit(RouterUnenrolled(domain, self.address))
                logger.info("Bridge %s: unenrolled domain %d", self.address, domain)

    def set_destination_gas(self, caller: str, domain: int, action: int, gas: int) -> None:
        self.set_destination_gas_configs(caller, [(domain, action, gas)])

    def set_destination_gas_configs(self, caller: str,
                                    configs: List[Tuple[int, int, int]]) -> None:
        with self._transaction():
            self._only_owner(caller)
            for domain, action, gas in configs:
                if gas < 0:
                    raise InvariantViolation("Gas must be non-negative")
                self._gas.setdefault(domain, {})[int(action)] = gas
                self._emit(GasSet(domain, int(action), gas, self.address))
                logger.info("Bridge %s: gas for domain %d action %d set to %d",
                            self.address, domain, int(action), gas)

    def set_hook(self, caller: str, hook: str) -> None:
        with self._transaction():
            self._only_owner(caller)
            self.hook = hook
            self._emit(HookSet(hook, self.address))
        logger.info("Bridge %s: hook set to %r", self.address, hook)

    def set_interchain_security_module(self, caller: str,
                                       ism: Optional[SecurityModule]) -> None:
        with self._transaction():
            self._only_owner(caller)
            self.interchain_security_module = ism
            self._emit(IsmSet(type(ism).__name__ if ism else "", self.address))
        logger.info("Bridge %s: security module set to %s", self.address,
                    type(ism).__name__ if ism else "mailbox default")

    def migrate_whole_unit(self, caller: str, new_unit: int, new_version: int) -> None:
        """Move the whole-unit denominator after a coordinated token change."""
        with self._transaction():
            self._only_owner(caller)
            if new_version <= self._whole_unit_version:
                raise InvariantViolation(
                    f"Version must increase past {self._whole_unit_version}"
                )
            if self.token.whole_unit() != new_unit:
                raise WholeUnitMismatch(
                    f"Token reports unit {self.token.whole_unit()}, not {new_unit}"
                )
            old = self._whole_unit
            self._whole_unit = new_unit
            self._whole_unit_version = new_version
            self.distributor.whole_unit = new_unit
            self._emit(WholeUnitMigrated(old, new_unit, new_version, self.address))
        logger.warning("Bridge %s: whole unit migrated %d -> %d (v%d)",
                       self.address, old, new_unit, new_version)
