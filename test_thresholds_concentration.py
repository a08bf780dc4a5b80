import unittest
import sys
import os

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'backend'))

from salesperf.config import Settings
from salesperf.core.exceptions import InvalidConfigurationException
from salesperf.layers.l1_ingestion.parser import records_to_frame
from salesperf.layers.l7_analytics.concentration import (
    hhi, risk_level, concentration, customer_concentration_by_person, org_concentration
)
from salesperf.layers.l7_analytics.thresholds import (
    percentile, dynamic_thresholds, grade_thresholds, assign_grade
)
from salesperf.models.schemas.records import SaleRecord
from salesperf.models.schemas.schemas import CustomerGrade, GRADE_ORDER, GradeThresholds, RiskLevel


class TestPercentile(unittest.TestCase):
    def test_linear_interpolation(self):
        values = [10, 20, 30, 40, 50]
        self.assertAlmostEqual(percentile(values, 50), 30.0)
        self.assertAlmostEqual(percentile(values, 25), 20.0)
        self.assertAlmostEqual(percentile(values, 100), 50.0)
        self.assertAlmostEqual(percentile(values, 0), 10.0)
        self.assertAlmostEqual(percentile(values, 80), 42.0)

    def test_small_populations(self):
        self.assertEqual(percentile([], 80), 0.0)
        self.assertEqual(percentile([7.5], 80), 7.5)

    def test_dynamic_thresholds_ignore_non_positive(self):
        thresholds = dynamic_thresholds([0, -5, 50, 10, 30, 20, 40], (50,))
        self.assertAlmostEqual(thresholds[0], 30.0)

    def test_out_of_range_percentile(self):
        with self.assertRaises(InvalidConfigurationException):
            dynamic_thresholds([1, 2, 3], (120,))

    def test_grade_percentiles_must_descend(self):
        with self.assertRaises(InvalidConfigurationException):
            grade_thresholds([1, 2, 3], (40, 60, 80))


class TestGrades(unittest.TestCase):
    def setUp(self):
        self.thresholds = GradeThresholds(A=80.0, B=60.0, C=40.0)

    def test_bands(self):
        self.assertEqual(assign_grade(0, self.thresholds), CustomerGrade.N)
        self.assertEqual(assign_grade(-10, self.thresholds), CustomerGrade.N)
        self.assertEqual(assign_grade(10, self.thresholds), CustomerGrade.D)
        self.assertEqual(assign_grade(40, self.thresholds), CustomerGrade.C)
        self.assertEqual(assign_grade(60, self.thresholds), CustomerGrade.B)
        self.assertEqual(assign_grade(80, self.thresholds), CustomerGrade.A)

    def test_monotonic(self):
        amounts = [-5, 0, 1, 20, 39.9, 40, 59, 60, 79, 80, 1000]
        orders = [GRADE_ORDER[assign_grade(a, self.thresholds)] for a in amounts]
        self.assertEqual(orders, sorted(orders))

    def test_grade_order_property(self):
        self.assertGreater(CustomerGrade.A.order, CustomerGrade.D.order)
        self.assertEqual(CustomerGrade.N.order, 0)


class TestHhi(unittest.TestCase):
    def test_bounds(self):
        for amounts in ([1], [1, 1], [5, 3, 2], [100, 1, 1, 1], [3] * 10):
            value = hhi(amounts)
            self.assertGreaterEqual(value, 1 / len(amounts) - 1e-12)
            self.assertLessEqual(value, 1.0 + 1e-12)

    def test_single_entity(self):
        self.assertAlmostEqual(hhi([250.0]), 1.0)
        result = concentration({"C1": 250.0})
        self.assertAlmostEqual(result.hhi, 1.0)
        self.assertEqual(result.risk_level, RiskLevel.HIGH)
        self.assertAlmostEqual(result.top_share, 1.0)

    def test_empty_and_zero_totals(self):
        self.assertEqual(hhi([]), 0.0)
        self.assertEqual(hhi([0, -3]), 0.0)
        result = concentration({"C1": 0.0})
        self.assertEqual(result.risk_level, RiskLevel.LOW)
        self.assertEqual(result.count, 0)

    def test_negative_amounts_carry_no_share(self):
        result = concentration({"C1": 50.0, "C2": 50.0, "C3": -20.0})
        self.assertAlmostEqual(result.hhi, 0.5)
        self.assertEqual(result.count, 2)
        self.assertAlmostEqual(sum(item.share for item in result.items), 1.0)

    def test_risk_tiers(self):
        settings = Settings()
        self.assertEqual(risk_level(0.30, settings), RiskLevel.HIGH)
        self.assertEqual(risk_level(0.25, settings), RiskLevel.MEDIUM)
        self.assertEqual(risk_level(0.20, settings), RiskLevel.MEDIUM)
        self.assertEqual(risk_level(0.15, settings), RiskLevel.LOW)

    def test_customers_per_person(self):
        df = records_to_frame([
            SaleRecord(person_id="P1", customer_id="C1", customer_name="Acme", amount=60),
            SaleRecord(person_id="P1", customer_id="C2", amount=40),
            SaleRecord(person_id="P2", customer_id="C3", amount=10),
        ])
        result = customer_concentration_by_person(df)
        self.assertAlmostEqual(result["P1"].hhi, 0.36 + 0.16)
        self.assertEqual(result["P1"].items[0].name, "Acme")
        self.assertEqual(result["P1"].items[1].name, "C2")
        self.assertAlmostEqual(result["P2"].hhi, 1.0)

    def test_org_concentration(self):
        df = records_to_frame([
            SaleRecord(org="East", amount=75),
            SaleRecord(org="West", amount=25),
            SaleRecord(org="", amount=1000),
        ])
        result = org_concentration(df)
        self.assertEqual(result.count, 2)
        self.assertAlmostEqual(result.top_share, 0.75)
        self.assertAlmostEqual(result.hhi, 0.625)


if __name__ == '__main__':
    unittest.main()
