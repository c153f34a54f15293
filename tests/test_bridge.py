"""
Tests for the NFT bridge across two ledgers:
  - whole transfers, id reroll and round trips
  - split transfers and fractional distribution on arrival
  - duplicate delivery, lost messages, unauthorized origins
  - atomic rollback, reentrancy, gas and fees
  - administration and whole-unit migration
"""

import pytest

from xnft.bridge import NFTBridge, OperationState
from xnft.codec import (
    MessageType,
    SendWhole,
    address_to_bytes32,
    decode_split,
    decode_whole,
    encode_whole,
)
from xnft.config import BridgeConfig
from xnft.errors import (
    AssetAlreadyLive,
    DecodingError,
    DistributionFailed,
    EncodingError,
    GasLimitNotSet,
    InsufficientFee,
    InvariantViolation,
    NotMailboxError,
    NotOwnerError,
    OperationAlreadyApplied,
    ReentrantCall,
    TotalAmountMustBeOne,
    UnauthorizedError,
    UnenrolledRouterError,
    WholeUnitMismatch,
)
from xnft.operation import compute_operation_id
from xnft.token import HybridToken
from xnft.transport import InterchainNetwork, Mailbox, TrustedRelayerISM

ADMIN = "0x" + "ad" * 20
BRIDGE_A = "0x" + "a1" * 20
BRIDGE_B = "0x" + "b2" * 20
ALICE = "0x" + "11" * 20
BOB = "0x" + "22" * 20
CAROL = "0x" + "33" * 20
UNIT = 10 ** 18
FEE = 100
SPLIT_FEE = 150


def b32(address: str) -> bytes:
    return address_to_bytes32(address)


class Ledger:
    def __init__(self, net, domain, address, id_start, id_end, token_cls=HybridToken):
        self.token = token_cls("Morse", "XMRS", owner=ADMIN,
                               id_start=id_start, id_end=id_end)
        self.token.set_controller(ADMIN, address)
        self.mailbox = net.register(Mailbox(domain=domain))
        self.bridge = NFTBridge(BridgeConfig(domain=domain, address=address, owner=ADMIN),
                                self.token, self.mailbox)


class TwoLedgers:
    """Domain 1 (ids 1..999_999) and domain 2 (ids 1_000_000..1_999_999)."""

    def __init__(self, token_cls=HybridToken):
        self.net = InterchainNetwork()
        self.a = Ledger(self.net, 1, BRIDGE_A, 1, 999_999, token_cls)
        self.b = Ledger(self.net, 2, BRIDGE_B, 1_000_000, 1_999_999)
        for here, there, domain in ((self.a, self.b, 2), (self.b, self.a, 1)):
            here.bridge.enroll_remote_router(ADMIN, domain, b32(there.bridge.address))
            here.bridge.set_destination_gas_configs(ADMIN, [
                (domain, MessageType.SEND_WHOLE, FEE),
                (domain, MessageType.SEND_SPLIT, SPLIT_FEE),
            ])
        # Alice owns ids 1, 2, 3 on domain 1
        self.a.token.issue(ADMIN, ALICE, 3 * UNIT)

    def last_message(self, ledger):
        return ledger.mailbox.outbound_ids()[-1]


@pytest.fixture
def env():
    return TwoLedgers()


# ═══════════════════════════════════════════════════════════════════════
# Whole transfers
# ═══════════════════════════════════════════════════════════════════════

class TestTransferWhole:
    def test_escrow_and_dispatch(self, env):
        predicted = env.a.bridge.next_operation_id(b32(ALICE))
        op_id = env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)

        assert op_id == predicted
        assert env.a.bridge.operation_nonce(b32(ALICE)) == 1
        assert env.a.token.owner_of(2) == BRIDGE_A

        msg_id = env.last_message(env.a)
        msg = decode_whole(env.a.mailbox.outbound(msg_id).body)
        assert msg.operation_id == op_id
        assert msg.recipient == b32(BOB)
        assert msg.asset_ids == [2]

        op = env.a.bridge.get_operation(op_id)
        assert op.state is OperationState.DISPATCHED
        assert op.message_id == msg_id
        event = env.a.bridge.events[-1]
        assert event.event_name == "TransferRemoteNFT"
        assert event.data["message_id"] == "0x" + msg_id.hex()

    def test_operation_id_derivation(self, env):
        op_id = env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        assert op_id == compute_operation_id(1, BRIDGE_A, b32(ALICE), 0)

    def test_scenario_a_fresh_mapping(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        env.net.deliver_all()

        mapped = env.b.bridge.mapped_id(1, 2)
        assert mapped == 1_000_000
        assert env.b.token.owner_of(mapped) == BOB
        assert env.b.token.balance_of(BOB) == UNIT
        assert env.b.bridge.remote_id(1, mapped) == 2
        assert env.b.bridge.events[-1].event_name == "ReceivedNFT"

    def test_repeat_delivery_reuses_mapping(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        msg_id = env.last_message(env.a)
        env.net.deliver(msg_id)

        with pytest.raises(OperationAlreadyApplied):
            env.net.deliver(msg_id)
        assert env.b.bridge.mapped_id(1, 2) == 1_000_000
        assert env.b.token.total_nft_supply() == 1
        assert env.b.token.total_supply() == UNIT
        assert env.b.mailbox.delivered(msg_id) == 1

    def test_batch(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1, 2, 3], value=FEE)
        env.net.deliver_all()
        assert env.a.token.tokens_of_owner(BRIDGE_A) == [1, 2, 3]
        assert sorted(env.b.token.tokens_of_owner(BOB)) == [1_000_000, 1_000_001, 1_000_002]

    def test_round_trip_restores_original_id(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        env.net.deliver_all()

        env.b.bridge.transfer_whole(BOB, 1, b32(CAROL), [1_000_000], value=FEE)
        wire = decode_whole(env.b.mailbox.outbound(env.last_message(env.b)).body)
        assert wire.asset_ids == [2]
        env.net.deliver_all()

        assert env.a.token.owner_of(2) == CAROL
        assert env.b.token.owner_of(1_000_000) == BRIDGE_B
        assert env.a.token.total_supply() == 3 * UNIT

    def test_mirror_reuses_id_on_second_trip(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        env.net.deliver_all()
        env.b.bridge.transfer_whole(BOB, 1, b32(ALICE), [1_000_000], value=FEE)
        env.net.deliver_all()

        env.a.bridge.transfer_whole(ALICE, 2, b32(CAROL), [2], value=FEE)
        env.net.deliver_all()
        assert env.b.token.owner_of(1_000_000) == CAROL
        assert env.b.token.total_nft_supply() == 1

    def test_lost_message_leaves_escrow(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        env.net.drop(env.last_message(env.a))
        assert env.net.deliver_all() == []
        assert env.a.token.owner_of(2) == BRIDGE_A
        assert env.b.bridge.mapped_id(1, 2) is None

    def test_home_asset_not_in_escrow(self, env):
        # a message claiming to return id 1 while Alice still holds it
        body = encode_whole(SendWhole(operation_id=b"\x01" * 32,
                                      recipient=b32(BOB), asset_ids=[1]))
        with pytest.raises(AssetAlreadyLive):
            env.a.bridge.handle(env.a.mailbox.address, 2, b32(BRIDGE_B), body)
        assert env.a.token.owner_of(1) == ALICE

    def test_home_asset_never_minted(self, env):
        body = encode_whole(SendWhole(operation_id=b"\x01" * 32,
                                      recipient=b32(BOB), asset_ids=[500]))
        with pytest.raises(InvariantViolation):
            env.a.bridge.handle(env.a.mailbox.address, 2, b32(BRIDGE_B), body)
        assert not env.a.token.exists(500)


# ═══════════════════════════════════════════════════════════════════════
# Redelivery
# ═══════════════════════════════════════════════════════════════════════

class TestRedelivery:
    def test_redelivered_after_mirror_went_home(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        first = env.last_message(env.a)
        env.net.deliver(first)
        env.b.bridge.transfer_whole(BOB, 1, b32(CAROL), [1_000_000], value=FEE)
        env.net.deliver(env.last_message(env.b))
        assert env.b.token.owner_of(1_000_000) == BRIDGE_B

        with pytest.raises(OperationAlreadyApplied) as exc:
            env.net.deliver(first)
        assert exc.value.origin == 1
        assert env.b.token.owner_of(1_000_000) == BRIDGE_B
        assert env.b.token.balance_of(BOB) == 0
        assert env.a.token.owner_of(2) == CAROL

    def test_redelivered_return_after_asset_left_again(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        env.net.deliver_all()
        env.b.bridge.transfer_whole(BOB, 1, b32(CAROL), [1_000_000], value=FEE)
        back = env.last_message(env.b)
        env.net.deliver(back)
        env.a.bridge.transfer_whole(CAROL, 2, b32(BOB), [2], value=FEE)
        env.net.deliver_all()
        assert env.a.token.owner_of(2) == BRIDGE_A

        with pytest.raises(OperationAlreadyApplied):
            env.net.deliver(back)
        assert env.a.token.owner_of(2) == BRIDGE_A
        assert env.a.token.balance_of(CAROL) == 0
        assert env.b.token.owner_of(1_000_000) == BOB

    def test_redelivered_split_after_whole_round_trip(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        env.net.deliver_all()
        env.b.bridge.transfer_split(BOB, 1, 1_000_000, [b32(ALICE), b32(CAROL)],
                                    [UNIT // 2, UNIT // 2], value=SPLIT_FEE)
        split = env.last_message(env.b)
        env.net.deliver(split)

        with pytest.raises(OperationAlreadyApplied):
            env.net.deliver(split)
        assert env.a.token.balance_of(CAROL) == UNIT // 2
        assert env.a.token.total_supply() == 3 * UNIT

    def test_rejected_delivery_can_be_retried(self, env):
        env.b.token.set_decimals(ADMIN, 6)
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        msg_id = env.last_message(env.a)
        with pytest.raises(WholeUnitMismatch):
            env.net.deliver(msg_id)

        env.b.bridge.migrate_whole_unit(ADMIN, 10 ** 6, 2)
        env.net.deliver(msg_id)
        assert env.b.token.balance_of(BOB) == 10 ** 6
        assert env.b.bridge.get_bridge_info()["applied"] == 1


# ═══════════════════════════════════════════════════════════════════════
# Split transfers
# ═══════════════════════════════════════════════════════════════════════

class TestTransferSplit:
    def test_scenario_b(self, env):
        op_id = env.a.bridge.transfer_split(
            ALICE, 2, 3, [b32(BOB), b32(CAROL)], [6 * UNIT // 10, 4 * UNIT // 10],
            value=SPLIT_FEE,
        )
        assert env.a.token.owner_of(3) == BRIDGE_A
        msg = decode_split(env.a.mailbox.outbound(env.last_message(env.a)).body)
        assert msg.operation_id == op_id
        assert msg.asset_id == 3

        env.net.deliver_all()
        token = env.b.token
        assert token.balance_of(BOB) == 6 * UNIT // 10
        assert token.balance_of(CAROL) == 4 * UNIT // 10
        assert token.balance_of(env.b.bridge.distributor.holding) == 0
        assert token.balance_of(BRIDGE_B) == 0
        assert token.total_supply() == UNIT
        assert env.b.bridge.events[-1].event_name == "ReceivedNFTPartial"

    def test_scenario_c_rejected_before_escrow(self, env):
        with pytest.raises(TotalAmountMustBeOne):
            env.a.bridge.transfer_split(
                ALICE, 2, 3, [b32(BOB), b32(CAROL)], [UNIT // 2, 3 * UNIT // 10],
                value=SPLIT_FEE,
            )
        assert env.a.token.owner_of(3) == ALICE
        assert env.a.bridge.operation_nonce(b32(ALICE)) == 0
        assert env.a.mailbox.outbound_ids() == []

    def test_length_mismatch(self, env):
        with pytest.raises(InvariantViolation):
            env.a.bridge.transfer_split(ALICE, 2, 3, [b32(BOB)], [UNIT // 2, UNIT // 2],
                                        value=SPLIT_FEE)

    def test_duplicate_split_delivery(self, env):
        env.a.bridge.transfer_split(ALICE, 2, 3, [b32(BOB), b32(CAROL)],
                                    [UNIT // 2, UNIT // 2], value=SPLIT_FEE)
        msg_id = env.last_message(env.a)
        env.net.deliver(msg_id)
        with pytest.raises(OperationAlreadyApplied):
            env.net.deliver(msg_id)
        assert env.b.token.balance_of(BOB) == UNIT // 2
        assert env.b.token.total_supply() == UNIT

    def test_split_of_mirror_back_home(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE)
        env.net.deliver_all()

        env.b.bridge.transfer_split(BOB, 1, 1_000_000, [b32(ALICE), b32(CAROL)],
                                    [UNIT // 2, UNIT // 2], value=SPLIT_FEE)
        env.net.deliver_all()

        token = env.a.token
        assert token.balance_of(ALICE) == 2 * UNIT + UNIT // 2
        assert token.balance_of(CAROL) == UNIT // 2
        assert token.balance_of(BRIDGE_A) == 0
        assert token.total_supply() == 3 * UNIT

    def test_failed_distribution_reverts_arrival(self, env):
        zero = b"\x00" * 32
        env.a.bridge.transfer_split(ALICE, 2, 3, [b32(BOB), zero],
                                    [UNIT // 2, UNIT // 2], value=SPLIT_FEE)
        msg_id = env.last_message(env.a)
        with pytest.raises(DistributionFailed):
            env.net.deliver(msg_id)

        assert env.b.bridge.mapped_id(1, 3) is None
        assert env.b.token.total_supply() == 0
        assert env.b.token.balance_of(BOB) == 0
        assert env.b.mailbox.delivered(msg_id) == 0
        assert env.b.bridge.get_bridge_info()["applied"] == 0
        # source side keeps the asset escrowed
        assert env.a.token.owner_of(3) == BRIDGE_A


# ═══════════════════════════════════════════════════════════════════════
# Inbound authorization and decoding
# ═══════════════════════════════════════════════════════════════════════

class TestInbound:
    def _body(self):
        return encode_whole(SendWhole(operation_id=b"\x01" * 32,
                                      recipient=b32(BOB), asset_ids=[5]))

    def test_only_mailbox(self, env):
        with pytest.raises(NotMailboxError):
            env.b.bridge.handle(ALICE, 1, b32(BRIDGE_A), self._body())

    def test_unenrolled_sender(self, env):
        with pytest.raises(UnenrolledRouterError):
            env.b.bridge.handle(env.b.mailbox.address, 1, b32(CAROL), self._body())
        assert env.b.token.total_supply() == 0

    def test_unenrolled_domain_over_network(self, env):
        rogue = env.net.register(Mailbox(domain=3))
        msg_id = rogue.dispatch(BRIDGE_A, 2, b32(BRIDGE_B), self._body())
        results = env.net.deliver_all()
        assert results == [(msg_id, False, results[0][2])]
        assert env.b.token.total_supply() == 0

    def test_malformed_body(self, env):
        with pytest.raises(DecodingError):
            env.b.bridge.handle(env.b.mailbox.address, 1, b32(BRIDGE_A), b"\x00\x01")
        with pytest.raises(DecodingError):
            env.b.bridge.handle(env.b.mailbox.address, 1, b32(BRIDGE_A), b"\x09" * 66)
        with pytest.raises(DecodingError):
            env.b.bridge.handle(env.b.mailbox.address, 1, b32(BRIDGE_A), self._body() + b"\x00")

    def test_bridge_ism(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        msg_id = env.last_message(env.a)

        env.b.bridge.set_interchain_security_module(ADMIN, TrustedRelayerISM(["other"]))
        with pytest.raises(UnauthorizedError):
            env.net.deliver(msg_id)

        env.b.bridge.set_interchain_security_module(ADMIN, TrustedRelayerISM(["relayer"]))
        env.net.deliver(msg_id)
        assert env.b.token.balance_of(BOB) == UNIT


# ═══════════════════════════════════════════════════════════════════════
# Rollback & reentrancy
# ═══════════════════════════════════════════════════════════════════════

class ReentrantToken(HybridToken):
    """Calls back into the bridge from inside lock()."""

    bridge = None

    def lock(self, controller, caller, token_id):
        if self.bridge is not None:
            self.bridge.transfer_whole(caller, 2, b32(BOB), [token_id])
        super().lock(controller, caller, token_id)


class TestAtomicity:
    def test_insufficient_fee(self, env):
        with pytest.raises(InsufficientFee):
            env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2], value=FEE - 1)
        assert env.a.token.owner_of(2) == ALICE
        assert env.a.bridge.operation_nonce(b32(ALICE)) == 0
        assert env.a.bridge.get_operations() == []

    def test_partial_batch_reverts(self, env):
        with pytest.raises(ValueError):
            env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1, 99], value=FEE)
        assert env.a.token.owner_of(1) == ALICE
        assert env.a.mailbox.outbound_ids() == []

    def test_not_owner_of_asset(self, env):
        with pytest.raises(PermissionError):
            env.a.bridge.transfer_whole(BOB, 2, b32(BOB), [1], value=FEE)
        assert env.a.token.owner_of(1) == ALICE

    def test_argument_checks(self, env):
        with pytest.raises(InvariantViolation):
            env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [], value=FEE)
        with pytest.raises(InvariantViolation):
            env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1, 1], value=FEE)
        with pytest.raises(EncodingError):
            env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), list(range(1, 257)), value=FEE)
        assert env.a.token.tokens_of_owner(ALICE) == [1, 2, 3]

    def test_reentrant_call_rejected(self):
        env = TwoLedgers(token_cls=ReentrantToken)
        env.a.token.bridge = env.a.bridge
        with pytest.raises(ReentrantCall):
            env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        assert env.a.token.owner_of(1) == ALICE

        env.a.token.bridge = None
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        assert env.a.token.owner_of(1) == BRIDGE_A

    def test_events_rolled_back(self, env):
        events = len(env.a.bridge.events)
        with pytest.raises(InsufficientFee):
            env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [2])
        assert len(env.a.bridge.events) == events


# ═══════════════════════════════════════════════════════════════════════
# Gas and quotes
# ═══════════════════════════════════════════════════════════════════════

class TestGas:
    def test_quotes(self, env):
        assert env.a.bridge.quote(2, b32(BOB), [1]) == FEE
        assert env.a.bridge.quote_split(2, 1, [b32(BOB)], [UNIT]) == SPLIT_FEE
        env.a.mailbox.set_gas_price(2, 3)
        assert env.a.bridge.quote(2, b32(BOB), [1]) == 3 * FEE

    def test_gas_not_set(self, env):
        env.a.bridge.enroll_remote_router(ADMIN, 9, b"\x09" * 32)
        with pytest.raises(GasLimitNotSet):
            env.a.bridge.quote(9, b32(BOB), [1])
        with pytest.raises(GasLimitNotSet):
            env.a.bridge.transfer_whole(ALICE, 9, b32(BOB), [1])
        assert env.a.token.owner_of(1) == ALICE

    def test_unenrolled_destination(self, env):
        with pytest.raises(UnenrolledRouterError):
            env.a.bridge.quote(9, b32(BOB), [1])
        with pytest.raises(UnenrolledRouterError):
            env.a.bridge.transfer_whole(ALICE, 9, b32(BOB), [1], value=FEE)

    def test_set_destination_gas(self, env):
        env.a.bridge.set_destination_gas(ADMIN, 2, MessageType.SEND_WHOLE, 500)
        assert env.a.bridge.destination_gas(2, MessageType.SEND_WHOLE) == 500
        assert env.a.bridge.quote_gas_payment(2, MessageType.SEND_WHOLE) == 500
        assert env.a.bridge.events[-1].event_name == "GasSet"

    def test_fee_collected_with_hook(self, env):
        env.a.bridge.set_hook(ADMIN, "igp")
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE + 10)
        msg_id = env.last_message(env.a)
        assert env.a.mailbox.hook_for(msg_id) == "igp"
        assert env.a.mailbox.fees_collected == FEE + 10


# ═══════════════════════════════════════════════════════════════════════
# Administration
# ═══════════════════════════════════════════════════════════════════════

class TestAdmin:
    def test_owner_only(self, env):
        with pytest.raises(NotOwnerError):
            env.a.bridge.enroll_remote_router(ALICE, 5, b"\x05" * 32)
        with pytest.raises(NotOwnerError):
            env.a.bridge.set_destination_gas(ALICE, 2, 0, 1)
        with pytest.raises(NotOwnerError):
            env.a.bridge.set_hook(ALICE, "x")
        with pytest.raises(NotOwnerError):
            env.a.bridge.migrate_whole_unit(ALICE, UNIT, 2)

    def test_enroll_and_unenroll(self, env):
        env.a.bridge.enroll_remote_routers(ADMIN, [5, 6], [b"\x05" * 32, b"\x06" * 32])
        assert env.a.bridge.domains() == [2, 5, 6]
        assert env.a.bridge.routers(5) == b"\x05" * 32

        env.a.bridge.unenroll_remote_routers(ADMIN, [5, 6])
        assert env.a.bridge.domains() == [2]
        assert env.a.bridge.routers(5) == b"\x00" * 32
        with pytest.raises(UnenrolledRouterError):
            env.a.bridge.unenroll_remote_router(ADMIN, 5)

    def test_enroll_validation(self, env):
        with pytest.raises(InvariantViolation):
            env.a.bridge.enroll_remote_routers(ADMIN, [5], [])
        with pytest.raises(InvariantViolation):
            env.a.bridge.enroll_remote_router(ADMIN, 5, b"\x05" * 20)
        assert 5 not in env.a.bridge.domains()

    def test_unenrolled_origin_rejected_after_unenroll(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        env.b.bridge.unenroll_remote_router(ADMIN, 1)
        with pytest.raises(UnenrolledRouterError):
            env.net.deliver(env.last_message(env.a))

    def test_transfer_ownership(self, env):
        env.a.bridge.transfer_ownership(ADMIN, CAROL)
        assert env.a.bridge.owner == CAROL
        env.a.bridge.set_hook(CAROL, "h")
        with pytest.raises(NotOwnerError):
            env.a.bridge.set_hook(ADMIN, "h")
        assert env.a.bridge.events[-1].event_name == "HookSet"

    def test_bridge_info(self, env):
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        info = env.a.bridge.get_bridge_info()
        assert info["domain"] == 1
        assert info["owner"] == ADMIN
        assert info["dispatched"] == 1
        assert info["routers"] == {2: "0x" + b32(BRIDGE_B).hex()}
        assert env.a.bridge.get_operations()[0]["state"] == "DISPATCHED"


# ═══════════════════════════════════════════════════════════════════════
# Whole-unit migration
# ═══════════════════════════════════════════════════════════════════════

class TestWholeUnit:
    def test_mismatch_blocks_arrival_until_migrated(self, env):
        env.b.token.set_decimals(ADMIN, 6)
        env.a.bridge.transfer_whole(ALICE, 2, b32(BOB), [1], value=FEE)
        msg_id = env.last_message(env.a)

        with pytest.raises(WholeUnitMismatch):
            env.net.deliver(msg_id)

        env.b.bridge.migrate_whole_unit(ADMIN, 10 ** 6, 2)
        assert env.b.bridge.whole_unit == 10 ** 6
        assert env.b.bridge.whole_unit_version == 2
        env.net.deliver(msg_id)
        assert env.b.token.balance_of(BOB) == 10 ** 6

    def test_mismatch_blocks_departure(self, env):
        env.b.token.set_decimals(ADMIN, 6)
        with pytest.raises(WholeUnitMismatch):
            env.b.bridge.transfer_split(BOB, 1, 1_000_000, [b32(ALICE)], [10 ** 6],
                                        value=SPLIT_FEE)

    def test_migration_checks(self, env):
        with pytest.raises(WholeUnitMismatch):
            env.b.bridge.migrate_whole_unit(ADMIN, 10 ** 6, 2)
        env.b.token.set_decimals(ADMIN, 6)
        with pytest.raises(InvariantViolation):
            env.b.bridge.migrate_whole_unit(ADMIN, 10 ** 6, 1)
        env.b.bridge.migrate_whole_unit(ADMIN, 10 ** 6, 2)
        assert env.b.bridge.distributor.whole_unit == 10 ** 6
        assert env.b.bridge.events[-1].event_name == "WholeUnitMigrated"
