import datetime
from decimal import ROUND_HALF_UP, Decimal

from django.test import TestCase

from ..exceptions import NotFoundError
from ..models import Batch, ImportContainer
from ..services.allocation import reallocate_container_costs, split_allocable_cost
from ..services.cash import delete_cash_movement, record_cash_movement
from ..services.chart import seed_chart_of_accounts
from .factories import make_bank, make_batch, make_container, make_product


class SplitAllocableCostTests(TestCase):

    def test_shares_add_up_exactly(self):
        shares = split_allocable_cost(
            Decimal("100.00"),
            [(1, Decimal("10.00")), (2, Decimal("10.00")), (3, Decimal("10.00"))],
        )
        self.assertEqual(sum(shares.values()), Decimal("100.00"))
        # equal values: the highest id takes the extra cent
        self.assertEqual(shares, {1: Decimal("33.33"), 2: Decimal("33.33"), 3: Decimal("33.34")})

    def test_leftover_cents_follow_the_largest_fractions(self):
        shares = split_allocable_cost(
            Decimal("10.00"),
            [(1, Decimal("1.00")), (2, Decimal("2.00")), (3, Decimal("3.00")), (4, Decimal("3.00")),
             (5, Decimal("7.00"))],
        )
        # exact shares 0.625 / 1.25 / 1.875 / 1.875 / 4.375: two cents to hand out,
        # the tied half-cents go to the larger value, then the higher id
        self.assertEqual(shares, {
            1: Decimal("0.62"), 2: Decimal("1.25"), 3: Decimal("1.87"),
            4: Decimal("1.88"), 5: Decimal("4.38"),
        })

    def test_many_small_shares_never_go_negative(self):
        batch_values = [(batch_id, Decimal("5.00")) for batch_id in range(1, 201)]
        shares = split_allocable_cost(Decimal("1.00"), batch_values)

        self.assertEqual(sum(shares.values()), Decimal("1.00"))
        self.assertGreaterEqual(min(shares.values()), Decimal("0.00"))
        self.assertEqual(max(shares.values()), Decimal("0.01"))
        # the hundred highest ids carry a cent each
        self.assertEqual([k for k, v in shares.items() if v], list(range(101, 201)))

    def test_zero_value_gets_nothing(self):
        shares = split_allocable_cost(Decimal("500.00"), [(1, Decimal("0")), (2, Decimal("0"))])
        self.assertEqual(shares, {1: Decimal("0.00"), 2: Decimal("0.00")})


class ContainerReallocationTests(TestCase):

    def setUp(self):
        self.product = make_product()

    def test_allocated_costs_reconcile_to_container_total(self):
        container = make_container(
            freight_charges="20000000", clearing_forwarding="9299504",
            port_charges="5000000",
            # taxes never reach the batches
            duty_bm="7500000", ppn_import="3100000", pph_import="775000",
        )
        self.assertEqual(container.total_allocable_cost, Decimal("34299504.00"))

        b1 = make_batch(self.product, "B-1", price="12500.5000", quantity="1000", container=container)
        b2 = make_batch(self.product, "B-2", price="8333.3333", quantity="700", container=container)

        b1.refresh_from_db()
        b2.refresh_from_db()
        self.assertEqual(b1.allocated_cost + b2.allocated_cost, Decimal("34299504.00"))
        for batch in (b1, b2):
            self.assertEqual(batch.final_landed_cost, batch.batch_value + batch.allocated_cost)
            self.assertEqual(
                batch.landed_cost_per_unit,
                (batch.final_landed_cost / batch.import_quantity).quantize(
                    Decimal("0.0001"), rounding=ROUND_HALF_UP),
            )

    def test_batch_own_charges_are_added_to_landed_cost(self):
        container = make_container(freight_charges="1000")
        batch = make_batch(self.product, "B-1", price="10", quantity="100", container=container,
                           duty_charges=Decimal("50"), other_charges=Decimal("25"))
        batch.refresh_from_db()
        self.assertEqual(batch.allocated_cost, Decimal("1000.00"))
        self.assertEqual(batch.final_landed_cost, Decimal("2075.00"))
        self.assertEqual(batch.landed_cost_per_unit, Decimal("20.7500"))

    def test_zero_value_container_does_not_divide_by_zero(self):
        container = make_container(freight_charges="1000")
        batch = make_batch(self.product, "B-1", price="0", quantity="10", container=container,
                           freight_charges=Decimal("40"))
        shares = reallocate_container_costs(container.pk)

        batch.refresh_from_db()
        self.assertEqual(shares, {batch.pk: Decimal("0.00")})
        self.assertEqual(batch.allocated_cost, Decimal("0.00"))
        self.assertEqual(batch.final_landed_cost, Decimal("40.00"))

    def test_changing_container_costs_reallocates(self):
        container = make_container(freight_charges="1000")
        batch = make_batch(self.product, "B-1", price="10", quantity="100", container=container)

        container.refresh_from_db()
        container.port_charges = Decimal("500")
        container.save()

        batch.refresh_from_db()
        container.refresh_from_db()
        self.assertEqual(container.total_allocable_cost, Decimal("1500.00"))
        self.assertEqual(batch.allocated_cost, Decimal("1500.00"))

    def test_moving_a_batch_reallocates_both_containers(self):
        first = make_container("CONT-A", freight_charges="900")
        second = make_container("CONT-B", freight_charges="300")
        b1 = make_batch(self.product, "B-1", price="10", quantity="100", container=first)
        b2 = make_batch(self.product, "B-2", price="10", quantity="200", container=first)
        b1.refresh_from_db()
        self.assertEqual(b1.allocated_cost, Decimal("300.00"))

        b2.refresh_from_db()
        b2.container = second
        b2.save()

        b1.refresh_from_db()
        b2.refresh_from_db()
        self.assertEqual(b1.allocated_cost, Decimal("900.00"))
        self.assertEqual(b2.allocated_cost, Decimal("300.00"))

    def test_standalone_per_unit_cost_rounds_half_up(self):
        # 12.25 over 1000 units is 0.01225 exactly
        loose = make_batch(self.product, "B-LOOSE", price="0", quantity="1000",
                           freight_charges=Decimal("12.25"))
        container = make_container(freight_charges="0")
        boxed = make_batch(self.product, "B-BOXED", price="0", quantity="1000",
                           container=container, freight_charges=Decimal("12.25"))

        loose.refresh_from_db()
        boxed.refresh_from_db()
        self.assertEqual(loose.landed_cost_per_unit, Decimal("0.0123"))
        self.assertEqual(boxed.landed_cost_per_unit, loose.landed_cost_per_unit)

    def test_removing_a_batch_from_its_container(self):
        container = make_container(freight_charges="600")
        b1 = make_batch(self.product, "B-1", price="10", quantity="100", container=container)
        b2 = make_batch(self.product, "B-2", price="10", quantity="200", container=container)

        b2.refresh_from_db()
        b2.container = None
        b2.save()

        b1.refresh_from_db()
        b2.refresh_from_db()
        self.assertEqual(b1.allocated_cost, Decimal("600.00"))
        self.assertEqual(b2.allocated_cost, Decimal("0.00"))
        self.assertEqual(b2.final_landed_cost, Decimal("2000.00"))

    def test_deleting_a_batch_reallocates(self):
        container = make_container(freight_charges="600")
        b1 = make_batch(self.product, "B-1", price="10", quantity="100", container=container)
        b2 = make_batch(self.product, "B-2", price="10", quantity="200", container=container)
        Batch.objects.filter(pk=b2.pk).delete()

        b1.refresh_from_db()
        self.assertEqual(b1.allocated_cost, Decimal("600.00"))

    def test_unknown_container(self):
        with self.assertRaises(NotFoundError):
            reallocate_container_costs(424242)


class CashCostRollupTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()
        self.bank = make_bank()
        self.product = make_product()
        self.container = make_container(freight_charges="1000")
        self.batch = make_batch(self.product, "B-1", price="10", quantity="100",
                                container=self.container)

    def record_other_import(self, amount):
        return record_cash_movement(
            kind="expense", channel="bank", bank_account=self.bank,
            movement_date=datetime.date(2026, 1, 20), amount=Decimal(amount),
            category="other_import", container=self.container,
        )

    def test_misc_import_costs_roll_up_and_reallocate(self):
        self.record_other_import("250")
        self.record_other_import("150")

        self.container.refresh_from_db()
        self.batch.refresh_from_db()
        self.assertEqual(self.container.other_import_costs, Decimal("400.00"))
        self.assertEqual(self.container.total_allocable_cost, Decimal("1400.00"))
        self.assertEqual(self.batch.allocated_cost, Decimal("1400.00"))

    def test_deleting_a_misc_cost_rolls_back_down(self):
        movement = self.record_other_import("250")
        delete_cash_movement(movement.pk)

        self.container.refresh_from_db()
        self.batch.refresh_from_db()
        self.assertEqual(self.container.other_import_costs, Decimal("0.00"))
        self.assertEqual(self.batch.allocated_cost, Decimal("1000.00"))

    def test_saving_the_container_keeps_rolled_up_fields(self):
        self.record_other_import("250")
        stale = ImportContainer.objects.get(pk=self.container.pk)
        stale.other_import_costs = Decimal("0")
        stale.save()

        stale.refresh_from_db()
        self.assertEqual(stale.other_import_costs, Decimal("250.00"))
