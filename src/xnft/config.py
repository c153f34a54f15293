"""
Bridge configuration.

The whole-unit denominator is an explicit, versioned setting.  The bridge
compares it with the token's own unit on every transfer and every inbound
message, and refuses to proceed until the owner migrates the setting
(``NFTBridge.migrate_whole_unit``).
"""

import json
import logging
from typing import Any, Dict, Optional

from .errors import ConfigurationError
from .operation import address_bytes, keccak256

logger = logging.getLogger("xnft.config")

UINT32_MAX = (1 << 32) - 1


class BridgeConfig:
    """Configuration for one bridge deployment."""

    def __init__(self, **kwargs):
        self.domain: int = kwargs.get("domain", 1)
        self.chain_id: int = kwargs.get("chain_id", self.domain)
        self.address: str = kwargs.get("address", "0x" + "b" * 40)
        self.owner: str = kwargs.get("owner", "")
        self.holding_address: str = kwargs.get("holding_address", "")
        self.whole_unit: int = kwargs.get("whole_unit", 10 ** 18)
        self.whole_unit_version: int = kwargs.get("whole_unit_version", 1)
        # domain -> action -> gas
        self.destination_gas: Dict[int, Dict[int, int]] = {
            int(d): {int(a): int(g) for a, g in actions.items()}
            for d, actions in kwargs.get("destination_gas", {}).items()
        }
        self.storage: str = kwargs.get("storage", "memory")
        self.storage_path: Optional[str] = kwargs.get("storage_path", None)
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.domain, int) or not 0 <= self.domain <= UINT32_MAX:
            raise ConfigurationError(f"Domain {self.domain!r} does not fit in uint32")
        if not isinstance(self.whole_unit, int) or self.whole_unit <= 0:
            raise ConfigurationError(f"whole_unit must be a positive integer, got {self.whole_unit!r}")
        if self.whole_unit_version < 1:
            raise ConfigurationError("whole_unit_version starts at 1")
        if self.storage not in ("memory", "sqlite"):
            raise ConfigurationError(f"Unknown storage backend '{self.storage}'")
        if self.storage == "sqlite" and not self.storage_path:
            raise ConfigurationError("sqlite storage needs storage_path")
        try:
            raw = bytes.fromhex(self.address.removeprefix("0x"))
        except ValueError:
            raw = b""
        if len(raw) != 20:
            raise ConfigurationError(f"Invalid bridge address {self.address!r}")

    @property
    def holding(self) -> str:
        """Address of the distributor's holding account."""
        if self.holding_address:
            return self.holding_address
        # low 20 bytes of keccak256(bridge address | "holding")
        digest = keccak256(address_bytes(self.address) + b"holding")
        return "0x" + digest[-20:].hex()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "chain_id": self.chain_id,
            "address": self.address,
            "owner": self.owner,
            "holding_address": self.holding_address,
            "whole_unit": self.whole_unit,
            "whole_unit_version": self.whole_unit_version,
            "destination_gas": {
                str(d): {str(a): g for a, g in actions.items()}
                for d, actions in self.destination_gas.items()
            },
            "storage": self.storage,
            "storage_path": self.storage_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        return cls(**data)

    @classmethod
    def from_file(cls, path: str) -> "BridgeConfig":
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read config {path}: {e}") from e
        logger.info("Loaded bridge config from %s", path)
        return cls.from_dict(data)
