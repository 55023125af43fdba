"""In-process aggregate locks."""

import threading
from uuid import UUID, uuid4

from inventory_kernel.db.locking import AggregateKey, AggregateLocks


def key(n: int, tenant: UUID = UUID(int=0)) -> AggregateKey:
    return AggregateKey(tenant, UUID(int=n), UUID(int=100 + n))


class TestOrdering:
    def test_deduplicated_and_sorted(self):
        keys = [key(3), key(1), key(3), key(2)]
        assert AggregateLocks.ordered(keys) == [key(1), key(2), key(3)]

    def test_order_is_independent_of_argument_order(self):
        a, b = AggregateKey(uuid4(), uuid4(), uuid4()), AggregateKey(uuid4(), uuid4(), uuid4())
        assert AggregateLocks.ordered([a, b]) == AggregateLocks.ordered([b, a])

    def test_string_form_names_the_aggregate(self):
        k = key(1)
        assert str(k) == f"{k.tenant_id}:{k.product_id}@{k.location_id}"


class TestHold:
    def test_yields_ordered_keys_and_registers_locks(self):
        locks = AggregateLocks()
        with locks.hold([key(2), key(1)]) as held:
            assert held == [key(1), key(2)]
            assert len(locks) == 2
        assert len(locks) == 0

    def test_registry_empties_once_nested_holds_unwind(self):
        locks = AggregateLocks()
        with locks.hold([key(1)]):
            with locks.hold([key(1), key(2)]):
                assert len(locks) == 2
            assert len(locks) == 1
        assert len(locks) == 0

    def test_many_aggregates_leave_nothing_behind(self):
        locks = AggregateLocks()
        for n in range(500):
            with locks.hold([key(n), key(n + 1)]):
                pass
        assert len(locks) == 0

    def test_reentrant_for_the_holding_thread(self):
        locks = AggregateLocks()
        with locks.hold([key(1)]):
            with locks.hold([key(1), key(2)]):
                pass

    def test_released_on_exception(self):
        locks = AggregateLocks()
        try:
            with locks.hold([key(1)]):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        acquired = threading.Event()

        def other():
            with locks.hold([key(1)]):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        t.join(timeout=5)
        assert acquired.is_set()

    def test_blocks_other_threads_on_the_same_aggregate(self):
        locks = AggregateLocks()
        entered = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold([key(1)]):
                entered.set()
                release.wait(timeout=5)

        t = threading.Thread(target=holder)
        t.start()
        entered.wait(timeout=5)

        contender_done = threading.Event()

        def contender():
            with locks.hold([key(1)]):
                contender_done.set()

        c = threading.Thread(target=contender)
        c.start()
        assert not contender_done.wait(timeout=0.2)

        # A different aggregate is not blocked
        with locks.hold([key(2)]):
            pass

        release.set()
        t.join(timeout=5)
        c.join(timeout=5)
        assert contender_done.is_set()
        assert len(locks) == 0
