"""
Hybrid fungible/NFT token used as the bridge's token capability.

Balances are kept in base units.  Every whole unit (``10 ** decimals``)
held by an account is backed by exactly one NFT id drawn from this
ledger's id range ``[id_start, id_end]``; ranges of different ledgers do
not overlap.  Fungible transfers rebalance the NFTs of both parties:
an account that drops below a whole unit loses an id, an account that
crosses one gains a freshly allocated id.

The bridge talks to the token only through :class:`TokenCapability`.
``lock``/``unlock``/``mint``/``burn`` are reserved to the registered
controller (the bridge contract address).

Usage::

    token = HybridToken("Morse", "XMRS", decimals=18, id_start=1, id_end=10_000)
    token.set_controller(owner, bridge_address)
    token.mint(bridge_address, alice, token.allocate_id(bridge_address))
"""

from __future__ import annotations

import abc
import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

logger = logging.getLogger("xnft.token")

ZERO_ADDRESS = "0x" + "0" * 40


# ══════════════════════════════════════════════════════════════════════
#  Events
# ══════════════════════════════════════════════════════════════════════

@dataclass
class TokenEvent:
    """Base token event."""
    event_name: str
    contract_address: str = ""
    timestamp: float = field(default_factory=time.time)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_name,
            "contract": self.contract_address,
            "timestamp": self.timestamp,
            **self.data,
        }


class TransferEvent(TokenEvent):
    """Fungible Transfer event (base units)."""
    def __init__(self, from_addr: str, to_addr: str, value: int,
                 contract_address: str = ""):
        super().__init__(
            event_name="Transfer",
            contract_address=contract_address,
            data={"from": from_addr, "to": to_addr, "value": value},
        )


class NFTTransferEvent(TokenEvent):
    """NFT Transfer event (one id)."""
    def __init__(self, from_addr: str, to_addr: str, token_id: int,
                 contract_address: str = ""):
        super().__init__(
            event_name="NFTTransfer",
            contract_address=contract_address,
            data={"from": from_addr, "to": to_addr, "id": token_id},
        )


class ApprovalEvent(TokenEvent):
    def __init__(self, owner: str, spender: str, token_id: int,
                 contract_address: str = ""):
        super().__init__(
            event_name="Approval",
            contract_address=contract_address,
            data={"owner": owner, "spender": spender, "id": token_id},
        )


class ApprovalForAllEvent(TokenEvent):
    def __init__(self, owner: str, operator: str, approved: bool,
                 contract_address: str = ""):
        super().__init__(
            event_name="ApprovalForAll",
            contract_address=contract_address,
            data={"owner": owner, "operator": operator, "approved": approved},
        )


# ══════════════════════════════════════════════════════════════════════
#  Capability interface
# ══════════════════════════════════════════════════════════════════════

class TokenCapability(abc.ABC):
    """What the bridge needs from a token."""

    @abc.abstractmethod
    def whole_unit(self) -> int: ...

    @abc.abstractmethod
    def balance_of(self, account: str) -> int: ...

    @abc.abstractmethod
    def owner_of(self, token_id: int) -> str: ...

    @abc.abstractmethod
    def exists(self, token_id: int) -> bool: ...

    @abc.abstractmethod
    def in_range(self, token_id: int) -> bool: ...

    @abc.abstractmethod
    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...

    @abc.abstractmethod
    def allocate_id(self, controller: str) -> int: ...

    @abc.abstractmethod
    def lock(self, controller: str, caller: str, token_id: int) -> None: ...

    @abc.abstractmethod
    def unlock(self, controller: str, token_id: int, to: str) -> None: ...

    @abc.abstractmethod
    def mint(self, controller: str, to: str, token_id: int) -> None: ...

    @abc.abstractmethod
    def burn(self, controller: str, token_id: int) -> None: ...

    @abc.abstractmethod
    def snapshot(self) -> Dict[str, Any]: ...

    @abc.abstractmethod
    def restore(self, snapshot: Dict[str, Any]) -> None: ...


# ══════════════════════════════════════════════════════════════════════
#  Reference implementation
# ══════════════════════════════════════════════════════════════════════

class HybridToken(TokenCapability):
    """Fungible balances with whole-unit NFT backing."""

    _STATE = (
        "_decimals", "_total_supply", "_balances", "_owners", "_owned",
        "_token_approvals", "_operator_approvals", "_skip_nft", "_next_id",
        "_controller",
    )

    def __init__(self, token_name: str, token_symbol: str,
                 decimals: int = 18, id_start: int = 1,
                 id_end: int = (1 << 64) - 1, owner: str = ""):
        if id_start < 1 or id_end < id_start:
            raise ValueError("Invalid NFT id range")
        self._name = token_name
        self._symbol = token_symbol
        self._decimals = decimals
        self._id_start = id_start
        self._id_end = id_end
        self._owner = owner

        self._total_supply: int = 0
        # account -> base-unit balance
        self._balances: Dict[str, int] = {}
        # token_id -> owner
        self._owners: Dict[int, str] = {}
        # owner -> ids, in acquisition order
        self._owned: Dict[str, List[int]] = {}
        self._token_approvals: Dict[int, str] = {}
        self._operator_approvals: Dict[str, Dict[str, bool]] = {}
        # accounts whose balance is not rebalanced into NFTs
        self._skip_nft: Set[str] = set()
        self._next_id: int = id_start
        self._controller: str = ""

        self.events: List[TokenEvent] = []
        self.contract_address: str = ""

    # ── Metadata ──────────────────────────────────────────────────

    def name(self) -> str:
        return self._name

    def symbol(self) -> str:
        return self._symbol

    def decimals(self) -> int:
        return self._decimals

    def whole_unit(self) -> int:
        return 10 ** self._decimals

    def total_supply(self) -> int:
        return self._total_supply

    def total_nft_supply(self) -> int:
        return len(self._owners)

    @property
    def id_range(self) -> tuple:
        return (self._id_start, self._id_end)

    def in_range(self, token_id: int) -> bool:
        return self._id_start <= token_id <= self._id_end

    def set_decimals(self, caller: str, decimals: int) -> None:
        """Change the denomination.  Only allowed with no supply outstanding."""
        self._only_owner(caller)
        if self._total_supply:
            raise ValueError("Cannot change decimals with outstanding supply")
        logger.warning("Token %s decimals changed %d -> %d; bridges must migrate",
                       self._symbol, self._decimals, decimals)
        self._decimals = decimals

    # ── Queries ───────────────────────────────────────────────────

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def owner_of(self, token_id: int) -> str:
        owner = self._owners.get(token_id, "")
        if not owner:
            raise ValueError(f"Token {token_id} does not exist")
        return owner

    def exists(self, token_id: int) -> bool:
        return token_id in self._owners

    def tokens_of_owner(self, owner: str) -> List[int]:
        return list(self._owned.get(owner, []))

    def get_approved(self, token_id: int) -> str:
        self.owner_of(token_id)
        return self._token_approvals.get(token_id, "")

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self._operator_approvals.get(owner, {}).get(operator, False)

    def is_approved_or_owner(self, spender: str, token_id: int) -> bool:
        owner = self.owner_of(token_id)
        return (
            spender == owner
            or self._token_approvals.get(token_id) == spender
            or self.is_approved_for_all(owner, spender)
        )

    # ── Approvals ─────────────────────────────────────────────────

    def approve(self, caller: str, to: str, token_id: int) -> None:
        owner = self.owner_of(token_id)
        if caller != owner and not self.is_approved_for_all(owner, caller):
            raise PermissionError("Not owner or approved operator")
        self._token_approvals[token_id] = to
        self._emit(ApprovalEvent(owner, to, token_id, self.contract_address))

    def set_approval_for_all(self, owner: str, operator: str,
                             approved: bool) -> None:
        if owner == operator:
            raise ValueError("Cannot approve self")
        self._operator_approvals.setdefault(owner, {})[operator] = approved
        self._emit(ApprovalForAllEvent(owner, operator, approved, self.contract_address))

    def set_skip_nft(self, account: str, skip: bool = True) -> None:
        """Exempt *account* from NFT rebalancing (custody accounts)."""
        if skip:
            self._skip_nft.add(account)
        else:
            self._skip_nft.discard(account)
            self._rebalance(account)

    def get_skip_nft(self, account: str) -> bool:
        return account in self._skip_nft

    # ── Fungible side ─────────────────────────────────────────────

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        if not recipient or recipient == ZERO_ADDRESS:
            raise ValueError("Transfer to zero address")
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise ValueError("Insufficient balance")
        if sender in self._skip_nft:
            backed = len(self._owned.get(sender, [])) * self.whole_unit()
            if balance - amount < backed:
                raise ValueError("Transfer would break NFT backing of a custody account")

        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self._emit(TransferEvent(sender, recipient, amount, self.contract_address))

        self._rebalance(sender)
        self._rebalance(recipient)
        return True

    def issue(self, caller: str, to: str, amount: int) -> None:
        """Owner-only fungible mint; whole units become NFTs of *to*."""
        self._only_owner(caller)
        if amount < 0:
            raise ValueError("Mint amount must be non-negative")
        if not to or to == ZERO_ADDRESS:
            raise ValueError("Mint to zero address")
        self._total_supply += amount
        self._balances[to] = self._balances.get(to, 0) + amount
        self._emit(TransferEvent(ZERO_ADDRESS, to, amount, self.contract_address))
        self._rebalance(to)

    def _rebalance(self, account: str) -> None:
        if account in self._skip_nft:
            return
        owned = self._owned.setdefault(account, [])
        wanted = self._balances.get(account, 0) // self.whole_unit()
        while len(owned) > wanted:
            token_id = owned.pop()
            del self._owners[token_id]
            self._token_approvals.pop(token_id, None)
            self._emit(NFTTransferEvent(account, ZERO_ADDRESS, token_id, self.contract_address))
        while len(owned) < wanted:
            token_id = self._allocate()
            self._owners[token_id] = account
            owned.append(token_id)
            self._emit(NFTTransferEvent(ZERO_ADDRESS, account, token_id, self.contract_address))

    def _allocate(self) -> int:
        while self._next_id in self._owners:
            self._next_id += 1
        if self._next_id > self._id_end:
            raise ValueError(f"NFT id range exhausted at {self._id_end}")
        token_id = self._next_id
        self._next_id += 1
        return token_id

    # ── NFT side ──────────────────────────────────────────────────

    def transfer_from(self, caller: str, from_addr: str,
                      to_addr: str, token_id: int) -> None:
        if not self.is_approved_or_owner(caller, token_id):
            raise PermissionError("Not approved or owner")
        if self.owner_of(token_id) != from_addr:
            raise ValueError("Transfer from incorrect owner")
        self._move_nft(from_addr, to_addr, token_id)

    def _move_nft(self, from_addr: str, to_addr: str, token_id: int) -> None:
        if not to_addr or to_addr == ZERO_ADDRESS:
            raise ValueError("Transfer to zero address")
        unit = self.whole_unit()
        self._token_approvals.pop(token_id, None)
        self._owned[from_addr].remove(token_id)
        self._balances[from_addr] = self._balances.get(from_addr, 0) - unit
        self._owners[token_id] = to_addr
        self._owned.setdefault(to_addr, []).append(token_id)
        self._balances[to_addr] = self._balances.get(to_addr, 0) + unit
        self._emit(NFTTransferEvent(from_addr, to_addr, token_id, self.contract_address))
        self._emit(TransferEvent(from_addr, to_addr, unit, self.contract_address))

    # ── Controller capability ─────────────────────────────────────

    def set_controller(self, caller: str, controller: str) -> None:
        self._only_owner(caller)
        self._controller = controller
        self._skip_nft.add(controller)
        logger.info("Token %s controller set to %s", self._symbol, controller)

    @property
    def controller(self) -> str:
        return self._controller

    def allocate_id(self, controller: str) -> int:
        """Reserve a fresh id from this ledger's range."""
        self._only_controller(controller)
        return self._allocate()

    def lock(self, controller: str, caller: str, token_id: int) -> None:
        """Move *token_id* from its owner into the controller's custody."""
        self._only_controller(controller)
        owner = self.owner_of(token_id)
        if not self.is_approved_or_owner(caller, token_id):
            raise PermissionError(f"{caller} is not owner of or approved for token {token_id}")
        self._move_nft(owner, controller, token_id)

    def unlock(self, controller: str, token_id: int, to: str) -> None:
        self._only_controller(controller)
        if self.owner_of(token_id) != controller:
            raise ValueError(f"Token {token_id} is not in custody")
        self._move_nft(controller, to, token_id)

    def mint(self, controller: str, to: str, token_id: int) -> None:
        self._only_controller(controller)
        if token_id in self._owners:
            raise ValueError(f"Token {token_id} already exists")
        if not to or to == ZERO_ADDRESS:
            raise ValueError("Mint to zero address")
        unit = self.whole_unit()
        self._owners[token_id] = to
        self._owned.setdefault(to, []).append(token_id)
        self._balances[to] = self._balances.get(to, 0) + unit
        self._total_supply += unit
        self._emit(NFTTransferEvent(ZERO_ADDRESS, to, token_id, self.contract_address))
        self._emit(TransferEvent(ZERO_ADDRESS, to, unit, self.contract_address))

    def burn(self, controller: str, token_id: int) -> None:
        self._only_controller(controller)
        if self.owner_of(token_id) != controller:
            raise ValueError(f"Token {token_id} is not in custody")
        unit = self.whole_unit()
        del self._owners[token_id]
        self._owned[controller].remove(token_id)
        self._balances[controller] -= unit
        self._total_supply -= unit
        self._emit(NFTTransferEvent(controller, ZERO_ADDRESS, token_id, self.contract_address))
        self._emit(TransferEvent(controller, ZERO_ADDRESS, unit, self.contract_address))

    def _only_controller(self, controller: str) -> None:
        if not self._controller or controller != self._controller:
            raise PermissionError("Only the controller may call this")

    def _only_owner(self, caller: str) -> None:
        if self._owner and caller != self._owner:
            raise PermissionError("Only owner")

    def _emit(self, event: TokenEvent) -> None:
        self.events.append(event)

    # ── Snapshot / persistence ────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        state = {name: copy.deepcopy(getattr(self, name)) for name in self._STATE}
        state["_events"] = len(self.events)
        return state

    def restore(self, snapshot: Dict[str, Any]) -> None:
        for name in self._STATE:
            setattr(self, name, copy.deepcopy(snapshot[name]))
        del self.events[snapshot["_events"]:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "standard": "hybrid",
            "name": self._name,
            "symbol": self._symbol,
            "decimals": self._decimals,
            "id_start": self._id_start,
            "id_end": self._id_end,
            "owner": self._owner,
            "controller": self._controller,
            "total_supply": self._total_supply,
            "next_id": self._next_id,
            "balances": dict(self._balances),
            "owners": {str(k): v for k, v in self._owners.items()},
            "skip_nft": sorted(self._skip_nft),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HybridToken":
        token = cls(
            token_name=data["name"],
            token_symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            id_start=data.get("id_start", 1),
            id_end=data.get("id_end", (1 << 64) - 1),
            owner=data.get("owner", ""),
        )
        token._controller = data.get("controller", "")
        token._total_supply = data.get("total_supply", 0)
        token._next_id = data.get("next_id", token._id_start)
        token._balances = dict(data.get("balances", {}))
        token._owners = {int(k): v for k, v in data.get("owners", {}).items()}
        for token_id in sorted(token._owners):
            token._owned.setdefault(token._owners[token_id], []).append(token_id)
        token._skip_nft = set(data.get("skip_nft", []))
        return token
