import datetime
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase

from ..exceptions import (ConcurrencyConflict, ConsistencyError,
                          InsufficientStockError)
from ..models import AuditLog, SalesOrder, StockMovement, StockReservation
from ..services import reservations
from ..services.reservations import (cancel_sales_order,
                                     deliver_against_reservation,
                                     recompute_reserved_stock,
                                     release_reservation, reserve_stock,
                                     reserve_stock_for_order,
                                     restore_reservation)
from ..services.stock import adjust_batch_stock
from .factories import make_batch, make_customer, make_order, make_product


class ReserveStockTests(TestCase):

    def setUp(self):
        self.product = make_product()
        self.customer = make_customer()
        self.batch = make_batch(self.product, "B-1", stock="150")
        # someone already holds 60
        first = make_order(self.customer, "SO-000", lines=[(self.product, "60")])
        reserve_stock(self.batch.pk, first.pk, "60")
        self.order = make_order(self.customer, "SO-001", lines=[(self.product, "200")])

    def test_request_above_free_stock_fails(self):
        with self.assertRaises(InsufficientStockError):
            reserve_stock(self.batch.pk, self.order.pk, "100")
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.reserved_stock, Decimal("60"))

    def test_request_within_free_stock_succeeds(self):
        reservation = reserve_stock(self.batch.pk, self.order.pk, "90")

        self.batch.refresh_from_db()
        self.assertEqual(reservation.status, "active")
        self.assertEqual(self.batch.reserved_stock, Decimal("150"))

    def test_line_cannot_be_over_reserved(self):
        other = make_batch(self.product, "B-2", stock="500")
        with self.assertRaises(ConsistencyError):
            reserve_stock(other.pk, self.order.pk, "201")

    def test_expired_batch_is_refused(self):
        old = make_batch(self.product, "B-OLD", stock="50",
                         import_date=datetime.date(2020, 1, 1),
                         expiry_date=datetime.date(2021, 1, 1))
        with self.assertRaises(ValidationError):
            reserve_stock(old.pk, self.order.pk, "10")

    def test_closed_order_is_refused(self):
        self.order.status = "delivered"
        self.order.save()
        with self.assertRaises(ValidationError):
            reserve_stock(self.batch.pk, self.order.pk, "10")

    def test_reserved_stock_is_the_live_sum(self):
        reserve_stock(self.batch.pk, self.order.pk, "40")
        # drifted cache gets rebuilt from reservations, not adjusted
        self.assertEqual(recompute_reserved_stock(self.batch.pk), Decimal("100"))


class ReserveForOrderTests(TestCase):

    def setUp(self):
        self.user = get_user_model().objects.create_user("sales", password="x")
        self.product = make_product()
        self.customer = make_customer()
        self.newer = make_batch(self.product, "B-NEW", stock="100",
                                import_date=datetime.date(2026, 2, 1))
        self.older = make_batch(self.product, "B-OLD", stock="30",
                                import_date=datetime.date(2025, 12, 1))

    def test_oldest_batches_are_used_first(self):
        order = make_order(self.customer, lines=[(self.product, "50")])
        result = reserve_stock_for_order(order.pk)

        self.assertEqual(result["status"], "stock_reserved")
        self.assertEqual(result["shortages"], {})
        taken = dict(StockReservation.objects.values_list("batch__batch_number", "quantity"))
        self.assertEqual(taken, {"B-OLD": Decimal("30"), "B-NEW": Decimal("20")})

    def test_shortage_notifies_order_creator(self):
        order = make_order(self.customer, lines=[(self.product, "200")], created_by=self.user)
        with mock.patch("finance_core.services.reservations.notify") as notify:
            result = reserve_stock_for_order(order.pk)

        order.refresh_from_db()
        self.assertEqual(order.status, "shortage")
        item = order.items.get()
        self.assertEqual(result["shortages"], {item.pk: Decimal("70")})
        notify.assert_called_once()
        self.assertEqual(notify.call_args.args[:2], (self.user.pk, "stock_shortage"))


class ReleaseAndRestoreTests(TestCase):

    def setUp(self):
        self.product = make_product()
        self.customer = make_customer()
        self.batch = make_batch(self.product, "B-1", stock="100")
        self.order = make_order(self.customer, lines=[(self.product, "40")])
        reserve_stock_for_order(self.order.pk)
        self.reservation = StockReservation.objects.get(order=self.order)

    def test_release_recomputes_and_reopens_order(self):
        release_reservation(self.reservation.pk, "customer postponed")

        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.reservation.refresh_from_db()
        self.assertEqual(self.batch.reserved_stock, Decimal("0"))
        self.assertEqual(self.reservation.status, "released")
        self.assertEqual(self.reservation.release_reason, "customer postponed")
        self.assertEqual(self.order.status, "approved")

    def test_double_release_conflicts(self):
        release_reservation(self.reservation.pk, "first")
        with self.assertRaises(ConcurrencyConflict):
            release_reservation(self.reservation.pk, "second")

    def test_restore_brings_back_reservation_and_order(self):
        release_reservation(self.reservation.pk, "mistake")
        restore_reservation(self.reservation.pk, reason="released by mistake")

        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.reservation.refresh_from_db()
        self.assertEqual(self.reservation.status, "active")
        self.assertIsNotNone(self.reservation.restored_at)
        self.assertEqual(self.batch.reserved_stock, Decimal("40"))
        self.assertEqual(self.order.status, "stock_reserved")
        log = AuditLog.objects.get(action="restore")
        self.assertEqual(log.changes["before"]["status"], "released")

    def test_restore_needs_free_stock(self):
        release_reservation(self.reservation.pk, "mistake")
        adjust_batch_stock(self.batch.pk, "-70", "adjustment")
        with self.assertRaises(InsufficientStockError):
            restore_reservation(self.reservation.pk)

    def test_cancel_order_releases_everything(self):
        cancel_sales_order(self.order.pk, "customer cancelled")

        self.batch.refresh_from_db()
        self.reservation.refresh_from_db()
        self.assertEqual(self.reservation.status, "cancelled")
        self.assertEqual(self.batch.reserved_stock, Decimal("0"))
        with self.assertRaises(ConcurrencyConflict):
            cancel_sales_order(self.order.pk, "again")

    def test_partial_then_full_delivery(self):
        reservation, movement_id = deliver_against_reservation(self.reservation.pk, "15")

        self.batch.refresh_from_db()
        self.assertEqual(reservation.quantity, Decimal("25"))
        self.assertEqual(self.batch.current_stock, Decimal("85"))
        self.assertEqual(self.batch.reserved_stock, Decimal("25"))
        self.assertEqual(StockMovement.objects.get(pk=movement_id).movement_type, "delivery")

        reservation, _ = deliver_against_reservation(self.reservation.pk, "25")
        self.batch.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(reservation.status, "released")
        self.assertEqual(self.batch.current_stock, Decimal("60"))
        self.assertEqual(self.batch.reserved_stock, Decimal("0"))
        self.assertEqual(self.order.status, "delivered")

    def test_cannot_deliver_more_than_reserved(self):
        with self.assertRaises(ValidationError):
            deliver_against_reservation(self.reservation.pk, "41")


class DeliveredQuantityTests(TestCase):

    def setUp(self):
        self.product = make_product()
        self.customer = make_customer()

    def test_shipped_quantity_is_not_reserved_again(self):
        batch = make_batch(self.product, "B-1", stock="300")
        order = make_order(self.customer, lines=[(self.product, "100")])
        reserve_stock_for_order(order.pk)
        reservation = StockReservation.objects.get(order=order)

        deliver_against_reservation(reservation.pk, "60")
        result = reserve_stock_for_order(order.pk)

        item = order.items.get()
        self.assertEqual(item.delivered_quantity, Decimal("60"))
        self.assertEqual(result["reservations"], [])
        self.assertEqual(item.reserved_quantity() + item.delivered_quantity, Decimal("100"))
        with self.assertRaises(ConsistencyError):
            reserve_stock(batch.pk, order.pk, "1")

    def test_restore_cannot_resurrect_shipped_quantity(self):
        make_batch(self.product, "B-1", stock="300")
        order = make_order(self.customer, lines=[(self.product, "100")])
        reserve_stock_for_order(order.pk)
        reservation = StockReservation.objects.get(order=order)
        deliver_against_reservation(reservation.pk, "30")
        release_reservation(reservation.pk, "split shipment")

        with self.assertRaises(ConsistencyError):
            reserve_stock(reservation.batch_id, order.pk, "71")
        reserve_stock(reservation.batch_id, order.pk, "70")
        with self.assertRaises(ConsistencyError):
            restore_reservation(reservation.pk)

    def test_partly_covered_order_is_partial_not_delivered(self):
        make_batch(self.product, "B-1", stock="40")
        order = make_order(self.customer, lines=[(self.product, "100")])
        reserve_stock_for_order(order.pk)
        reservation = StockReservation.objects.get(order=order)

        deliver_against_reservation(reservation.pk, "40")

        order.refresh_from_db()
        self.assertEqual(order.status, "partial")
        self.assertFalse(order.reservations.active().exists())

    def test_order_is_delivered_when_every_line_has_shipped(self):
        other = make_product("GEL-02", "Gelatin fine")
        make_batch(self.product, "B-1", stock="50")
        make_batch(other, "B-2", stock="50")
        order = make_order(self.customer, lines=[(self.product, "10"), (other, "5")])
        reserve_stock_for_order(order.pk)
        first, second = StockReservation.objects.filter(order=order).order_by("id")

        deliver_against_reservation(first.pk, "10")
        order.refresh_from_db()
        self.assertEqual(order.status, "partial")

        deliver_against_reservation(second.pk, "5")
        order.refresh_from_db()
        self.assertEqual(order.status, "delivered")

    def test_release_and_delivery_lock_the_order_first(self):
        make_batch(self.product, "B-1", stock="50")
        order = make_order(self.customer, lines=[(self.product, "20")])
        reserve_stock_for_order(order.pk)
        reservation = StockReservation.objects.get(order=order)

        with mock.patch.object(reservations, "_lock", wraps=reservations._lock) as lock:
            deliver_against_reservation(reservation.pk, "5")
            release_reservation(reservation.pk, "postponed")

        locked = [call.args[0] for call in lock.call_args_list]
        self.assertEqual(locked, [SalesOrder, StockReservation, SalesOrder, StockReservation])
