from decimal import Decimal

from django.test import SimpleTestCase

from apps.common.money import format_peso, is_settled, percent_of, to_money


class MoneyTests(SimpleTestCase):
    def test_to_money_rounds_half_up(self):
        self.assertEqual(to_money("10.005"), Decimal("10.01"))
        self.assertEqual(to_money(0.1 + 0.2), Decimal("0.30"))
        with self.assertRaises(ValueError):
            to_money("ten")

    def test_percent_of(self):
        self.assertEqual(percent_of(Decimal("1000.00"), 30), Decimal("300.00"))
        self.assertEqual(percent_of(Decimal("333.33"), 50), Decimal("166.67"))

    def test_settled_boundary(self):
        self.assertTrue(is_settled(Decimal("0.00")))
        self.assertFalse(is_settled(Decimal("0.01")))

    def test_format_peso(self):
        self.assertEqual(format_peso(Decimal("1234.5")), "₱1,234.50")
