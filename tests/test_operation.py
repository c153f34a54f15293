import threading

import pytest

from xnft.operation import (
    KeyedLock,
    OperationIdGenerator,
    address_bytes,
    compute_operation_id,
    keccak256,
)

CONTRACT = "0x" + "c0" * 20
ALICE = b"\x00" * 12 + b"\x11" * 20
BOB = b"\x00" * 12 + b"\x22" * 20


class TestKeccak:
    def test_empty_digest(self):
        # Ethereum keccak-256, not NIST SHA3-256
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_address_bytes(self):
        assert address_bytes(CONTRACT) == b"\xc0" * 20
        with pytest.raises(ValueError):
            address_bytes("0x1234")


class TestComputeOperationId:
    def test_preimage_layout(self):
        expected = keccak256(
            (5).to_bytes(32, "big") + b"\xc0" * 20 + ALICE + (3).to_bytes(32, "big")
        )
        assert compute_operation_id(5, CONTRACT, ALICE, 3) == expected

    def test_every_field_matters(self):
        base = compute_operation_id(1, CONTRACT, ALICE, 0)
        assert compute_operation_id(2, CONTRACT, ALICE, 0) != base
        assert compute_operation_id(1, "0x" + "c1" * 20, ALICE, 0) != base
        assert compute_operation_id(1, CONTRACT, BOB, 0) != base
        assert compute_operation_id(1, CONTRACT, ALICE, 1) != base

    def test_sender_must_be_32_bytes(self):
        with pytest.raises(ValueError):
            compute_operation_id(1, CONTRACT, b"\x11" * 20, 0)

    def test_nonce_range(self):
        with pytest.raises(ValueError):
            compute_operation_id(1, CONTRACT, ALICE, -1)


class TestOperationIdGenerator:
    def test_unseen_sender_starts_at_zero(self):
        ids = OperationIdGenerator(1, CONTRACT)
        assert ids.current_nonce(ALICE) == 0

    def test_consume_returns_peeked_id(self):
        ids = OperationIdGenerator(1, CONTRACT)
        peeked = ids.next_id(ALICE)
        assert ids.consume(ALICE) == peeked
        assert ids.current_nonce(ALICE) == 1
        assert ids.next_id(ALICE) != peeked

    def test_ids_never_repeat(self):
        ids = OperationIdGenerator(1, CONTRACT)
        seen = {ids.consume(ALICE) for _ in range(50)}
        assert len(seen) == 50
        assert ids.current_nonce(ALICE) == 50

    def test_senders_are_independent(self):
        ids = OperationIdGenerator(1, CONTRACT)
        ids.consume(ALICE)
        ids.consume(ALICE)
        assert ids.current_nonce(BOB) == 0
        assert ids.next_id(BOB) == compute_operation_id(1, CONTRACT, BOB, 0)

    def test_predictable_by_observers(self):
        ids = OperationIdGenerator(7, CONTRACT)
        ids.consume(ALICE)
        assert ids.next_id(ALICE) == compute_operation_id(7, CONTRACT, ALICE, 1)

    def test_restore(self):
        ids = OperationIdGenerator(1, CONTRACT)
        ids.consume(ALICE)
        saved = ids.nonces()
        ids.consume(ALICE)
        ids.restore(saved)
        assert ids.current_nonce(ALICE) == 1

    def test_bad_contract_address(self):
        with pytest.raises(ValueError):
            OperationIdGenerator(1, "0xdead")

    def test_concurrent_consume(self):
        ids = OperationIdGenerator(1, CONTRACT)
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(25):
                op = ids.consume(ALICE)
                with lock:
                    results.append(op)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(results)) == 100
        assert ids.current_nonce(ALICE) == 100


class TestKeyedLock:
    def test_same_key_is_exclusive(self):
        locks = KeyedLock()
        entered = []

        def worker():
            with locks.hold("a"):
                entered.append(1)

        with locks.hold("a"):
            t = threading.Thread(target=worker)
            t.start()
            t.join(timeout=0.2)
            assert entered == []
        t.join(timeout=2)
        assert entered == [1]
        assert len(locks) == 0

    def test_released_keys_are_dropped(self):
        locks = KeyedLock()
        for key in range(50):
            with locks.hold(("in", 1, key)):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_key_dropped_after_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with locks.hold("b"):
                pass
