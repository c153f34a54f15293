"""Structured records emitted by the bridge."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class BridgeEvent:
    """Base bridge event."""
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


def _hex(value: bytes) -> str:
    return "0x" + value.hex()


class TransferRemoteNFT(BridgeEvent):
    """Correlates an operation id with its message id and assets."""
    def __init__(self, operation_id: bytes, destination: int, recipient: bytes,
                 message_id: bytes, token_ids: List[int],
                 contract_address: str = ""):
        super().__init__(
            event_name="TransferRemoteNFT",
            contract_address=contract_address,
            data={
                "operation_id": _hex(operation_id),
                "destination": destination,
                "recipient": _hex(recipient),
                "message_id": _hex(message_id),
                "token_ids": list(token_ids),
            },
        )


class TransferRemoteNFTPartial(BridgeEvent):
    def __init__(self, operation_id: bytes, destination: int, message_id: bytes,
                 token_id: int, recipients: List[bytes], amounts: List[int],
                 contract_address: str = ""):
        super().__init__(
            event_name="TransferRemoteNFTPartial",
            contract_address=contract_address,
            data={
                "operation_id": _hex(operation_id),
                "destination": destination,
                "message_id": _hex(message_id),
                "token_id": token_id,
                "recipients": [_hex(r) for r in recipients],
                "amounts": list(amounts),
            },
        )


class ReceivedNFT(BridgeEvent):
    def __init__(self, operation_id: bytes, recipient: bytes, token_ids: List[int],
                 contract_address: str = ""):
        super().__init__(
            event_name="ReceivedNFT",
            contract_address=contract_address,
            data={
                "operation_id": _hex(operation_id),
                "recipient": _hex(recipient),
                "token_ids": list(token_ids),
            },
        )


class ReceivedNFTPartial(BridgeEvent):
    def __init__(self, operation_id: bytes, token_id: int, recipients: List[bytes],
                 amounts: List[int], contract_address: str = ""):
        super().__init__(
            event_name="ReceivedNFTPartial",
            contract_address=contract_address,
            data={
                "operation_id": _hex(operation_id),
                "token_id": token_id,
                "recipients": [_hex(r) for r in recipients],
                "amounts": list(amounts),
            },
        )


class GasSet(BridgeEvent):
    def __init__(self, domain: int, action: int, gas: int, contract_address: str = ""):
        super().__init__(
            event_name="GasSet",
            contract_address=contract_address,
            data={"domain": domain, "action": action, "gas": gas},
        )


class RouterEnrolled(BridgeEvent):
    def __init__(self, domain: int, router: bytes, contract_address: str = ""):
        super().__init__(
            event_name="RouterEnrolled",
            contract_address=contract_address,
            data={"domain": domain, "router": _hex(router)},
        )


class RouterUnenrolled(BridgeEvent):
    def __init__(self, domain: int, contract_address: str = ""):
        super().__init__(
            event_name="RouterUnenrolled",
            contract_address=contract_address,
            data={"domain": domain},
        )


class HookSet(BridgeEvent):
    def __init__(self, hook: str, contract_address: str = ""):
        super().__init__(event_name="HookSet", contract_address=contract_address,
                         data={"hook": hook})


class IsmSet(BridgeEvent):
    def __init__(self, ism: str, contract_address: str = ""):
        super().__init__(event_name="IsmSet", contract_address=contract_address,
                         data={"ism": ism})


class OwnershipTransferred(BridgeEvent):
    def __init__(self, previous: str, new: str, contract_address: str = ""):
        super().__init__(
            event_name="OwnershipTransferred",
            contract_address=contract_address,
            data={"previous_owner": previous, "new_owner": new},
        )


class WholeUnitMigrated(BridgeEvent):
    def __init__(self, old_unit: int, new_unit: int, version: int,
                 contract_address: str = ""):
        super().__init__(
            event_name="WholeUnitMigrated",
            contract_address=contract_address,
            data={"old_unit": old_unit, "new_unit": new_unit, "version": version},
        )
