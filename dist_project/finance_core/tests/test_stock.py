import threading
import time
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase

from ..exceptions import NegativeStockError, NotFoundError
from ..models import Batch, JournalEntry, Product, StockMovement
from ..services.chart import seed_chart_of_accounts
from ..services.reservations import reserve_stock
from ..services.stock import adjust_batch_stock, recompute_product_stock
from .factories import make_batch, make_customer, make_order, make_product


class AdjustBatchStockTests(TestCase):

    def setUp(self):
        seed_chart_of_accounts()
        self.product = make_product()
        self.batch = make_batch(self.product, "B-1", stock="150", price="10", quantity="150")
        recompute_product_stock(self.product.pk)

    def test_adjustments_apply_in_either_order(self):
        # both callers hold the same stale instance; the database does the arithmetic
        stale = Batch.objects.get(pk=self.batch.pk)
        adjust_batch_stock(stale.pk, Decimal("-60"), "adjustment", reference_id="ADJ-1")
        new_stock, _ = adjust_batch_stock(stale.pk, Decimal("20"), "purchase", reference_id="PO-1")
        self.assertEqual(new_stock, Decimal("110"))

        other = make_batch(self.product, "B-2", stock="150")
        adjust_batch_stock(other.pk, Decimal("20"), "purchase")
        new_stock, _ = adjust_batch_stock(other.pk, Decimal("-60"), "adjustment")
        self.assertEqual(new_stock, Decimal("110"))

    def test_every_change_leaves_a_movement(self):
        new_stock, movement_id = adjust_batch_stock(
            self.batch.pk, "-10", "rejection", reference_id=77, notes="damaged bags")

        movement = StockMovement.objects.get(pk=movement_id)
        self.assertEqual(movement.quantity_change, Decimal("-10"))
        self.assertEqual(movement.resulting_stock, new_stock)
        self.assertEqual(movement.reference_id, "77")
        self.assertEqual(movement.product_id, self.product.pk)

    def test_movements_are_immutable(self):
        _, movement_id = adjust_batch_stock(self.batch.pk, "5", "return")
        movement = StockMovement.objects.get(pk=movement_id)
        movement.notes = "edited"
        with self.assertRaises(ValidationError):
            movement.save()
        with self.assertRaises(ValidationError):
            movement.delete()

    def test_product_total_follows_batches(self):
        make_batch(self.product, "B-2", stock="50")
        adjust_batch_stock(self.batch.pk, "-30", "sale")

        self.product.refresh_from_db()
        self.assertEqual(self.product.total_stock, Decimal("170"))

    def test_stock_cannot_go_negative(self):
        with self.assertRaises(NegativeStockError):
            adjust_batch_stock(self.batch.pk, "-151", "adjustment")
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("150"))
        self.assertFalse(StockMovement.objects.exists())

    def test_reserved_stock_cannot_be_adjusted_away(self):
        order = make_order(make_customer(), lines=[(self.product, "100")])
        reserve_stock(self.batch.pk, order.pk, "100")

        with self.assertRaises(NegativeStockError):
            adjust_batch_stock(self.batch.pk, "-60", "adjustment")
        new_stock, _ = adjust_batch_stock(self.batch.pk, "-50", "adjustment")
        self.assertEqual(new_stock, Decimal("100"))

    def test_zero_and_unknown_types_are_refused(self):
        with self.assertRaises(ValidationError):
            adjust_batch_stock(self.batch.pk, "0", "adjustment")
        with self.assertRaises(ValidationError):
            adjust_batch_stock(self.batch.pk, "1", "teleport")

    def test_unknown_batch(self):
        with self.assertRaises(NotFoundError):
            adjust_batch_stock(999999, "1", "adjustment")

    def test_valued_adjustment_posts_to_ledger(self):
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.landed_cost_per_unit, Decimal("10.0000"))

        _, movement_id = adjust_batch_stock(
            self.batch.pk, "-4", "adjustment", notes="count", post_to_ledger=True)

        entry = JournalEntry.objects.get(source_module="inventory", reference_id=str(movement_id))
        self.assertEqual(entry.total_debit, Decimal("40.00"))
        credit = entry.lines.get(credit__gt=0)
        self.assertEqual(credit.account.code, "1130")

    def test_unvalued_movement_is_not_posted(self):
        adjust_batch_stock(self.batch.pk, "5", "purchase", post_to_ledger=True)
        self.assertFalse(JournalEntry.objects.exists())

    def test_total_stock_is_not_writable_by_callers(self):
        Product.objects.filter(pk=self.product.pk).update(total_stock=Decimal("1"))
        recompute_product_stock(self.product.pk)
        self.product.refresh_from_db()
        self.assertEqual(self.product.total_stock, Decimal("150"))


class ConcurrentAdjustmentTests(TransactionTestCase):
    """Two writers on separate connections; the database serializes the arithmetic."""

    def setUp(self):
        self.batch = make_batch(make_product(), "B-1", stock="150")

    def _adjust_from_thread(self, delta, start, errors):
        try:
            start.wait(timeout=5)
            # SQLite reports a busy shared cache instead of waiting, so retry briefly
            for _ in range(100):
                try:
                    adjust_batch_stock(self.batch.pk, delta, "adjustment")
                    return
                except OperationalError:
                    time.sleep(0.01)
            errors.append(f"{delta} never got the write lock")
        except Exception as exc:
            errors.append(exc)
        finally:
            connection.close()

    def test_parallel_adjustments_lose_no_update(self):
        start = threading.Barrier(2)
        errors = []
        threads = [
            threading.Thread(target=self._adjust_from_thread, args=(delta, start, errors))
            for delta in (Decimal("-60"), Decimal("20"))
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(errors, [])
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("110"))
        self.assertEqual(
            sorted(StockMovement.objects.values_list("quantity_change", flat=True)),
            [Decimal("-60"), Decimal("20")],
        )
