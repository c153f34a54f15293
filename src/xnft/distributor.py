"""
Atomic fan-out of one NFT's backing value to several recipients.

The asset sits in the custodian's custody (the bridge).  ``distribute``
moves it into a dedicated holding account and then pays every recipient
its share in fungible base units.  Once the holding account drops below a
whole unit the token burns the NFT, so nothing is left behind.  Any dust
found in the holding account beforehand is swept back to the custodian
first.  The whole batch runs against a token snapshot: if one transfer
fails, every transfer of the batch is undone.
"""

from __future__ import annotations

import logging
from typing import List

from .errors import (
    BridgeError,
    DistributionFailed,
    InvariantViolation,
    TotalAmountMustBeOne,
)
from .token import TokenCapability

logger = logging.getLogger("xnft.distributor")


def check_split(amounts: List[int], whole_unit: int, recipients: List = None) -> None:
    """Raise unless *amounts* add up to exactly one whole unit."""
    if recipients is not None and len(recipients) != len(amounts):
        raise InvariantViolation(
            f"Recipients/amounts length mismatch: {len(recipients)} != {len(amounts)}"
        )
    for amount in amounts:
        if not isinstance(amount, int) or amount < 0:
            raise InvariantViolation(f"Invalid split amount {amount!r}")
    total = sum(amounts)
    if total != whole_unit:
        raise TotalAmountMustBeOne(total, whole_unit)


class FractionalDistributor:
    """Splits a single asset across recipients, all or nothing."""

    def __init__(self, token: TokenCapability, custodian: str, holding: str,
                 whole_unit: int):
        if custodian == holding:
            raise ValueError("Holding account must differ from the custodian")
        self.token = token
        self.custodian = custodian
        self.holding = holding
        self.whole_unit = whole_unit

    def sweep(self) -> int:
        """Move leftover balance in the holding account back to the custodian."""
        residual = self.token.balance_of(self.holding)
        if residual:
            self.token.transfer(self.holding, self.custodian, residual)
            logger.warning("Distributor: swept %d residual units from holding %s",
                           residual, self.holding)
        return residual

    def distribute(self, asset_id: int, recipients: List[str],
                   amounts: List[int]) -> None:
        check_split(amounts, self.whole_unit, recipients)

        snapshot = self.token.snapshot()
        try:
            self.sweep()
            self.token.unlock(self.custodian, asset_id, self.holding)
            for recipient, amount in zip(recipients, amounts):
                self.token.transfer(self.holding, recipient, amount)
            left = self.token.balance_of(self.holding)
            if left:
                raise DistributionFailed(f"{left} units left in holding after fan-out")
        except BridgeError:
            self.token.restore(snapshot)
            raise
        except Exception as e:
            self.token.restore(snapshot)
            raise DistributionFailed(f"Distribution of asset {asset_id} failed: {e}") from e

        logger.info("Distributor: asset %d split across %d recipients",
                    asset_id, len(recipients))
