import unittest
import sys
import os

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'backend'))

from salesperf.config import Settings
from salesperf.layers.l7_analytics.clv import calc_clv, calc_clv_summary, calc_margin_rates
from salesperf.layers.l7_analytics.migration import calc_customer_migration, compare_months
from salesperf.layers.l7_analytics.rfm import (
    quintile_scores, classify_segment, calc_rfm_scores, calc_rfm_segment_summary, segment_action
)
from salesperf.models.schemas.records import SaleRecord, OrgProfitRecord, PlanActual
from salesperf.models.schemas.schemas import CustomerGrade, RfmSegment


def sale(customer, month, amount, org="East"):
    return SaleRecord(org=org, person_id="P1", customer_id=customer, sale_date=month, amount=amount)


class TestQuintiles(unittest.TestCase):
    def test_five_or_more(self):
        self.assertEqual(quintile_scores([10, 20, 30, 40, 50]), [1, 2, 3, 4, 5])
        self.assertEqual(quintile_scores([5, 4, 3, 2, 1, 0, 6, 7, 8, 9]), [3, 3, 2, 2, 1, 1, 4, 4, 5, 5])

    def test_small_populations(self):
        self.assertEqual(quintile_scores([42]), [3])
        self.assertEqual(quintile_scores([1, 2]), [1, 5])
        self.assertEqual(quintile_scores([1, 2, 3]), [1, 3, 5])
        self.assertEqual(quintile_scores([1, 2, 3, 4]), [1, 2, 4, 5])
        self.assertEqual(quintile_scores([]), [])

    def test_inverted(self):
        self.assertEqual(quintile_scores([0, 1, 2, 3, 4], invert=True), [5, 4, 3, 2, 1])

    def test_ties_follow_input_order(self):
        self.assertEqual(quintile_scores([7, 7]), [1, 5])


class TestSegments(unittest.TestCase):
    def test_decision_table(self):
        self.assertEqual(classify_segment(5, 5, 5), RfmSegment.VIP)
        self.assertEqual(classify_segment(4, 4, 4), RfmSegment.VIP)
        self.assertEqual(classify_segment(2, 3, 3), RfmSegment.AT_RISK)
        self.assertEqual(classify_segment(3, 3, 3), RfmSegment.LOYAL)
        self.assertEqual(classify_segment(5, 3, 5), RfmSegment.LOYAL)
        self.assertEqual(classify_segment(4, 1, 1), RfmSegment.POTENTIAL)
        self.assertEqual(classify_segment(1, 1, 1), RfmSegment.LOST)
        self.assertEqual(classify_segment(1, 3, 1), RfmSegment.DORMANT)
        self.assertEqual(classify_segment(2, 1, 4), RfmSegment.DORMANT)

    def test_every_segment_has_action(self):
        for segment in RfmSegment:
            self.assertIn("action", segment_action(segment))


class TestRfm(unittest.TestCase):
    def setUp(self):
        self.sales = [
            sale("A", "2024-03-01", 200), sale("A", "2024-03-10", 200), sale("A", "2024-03-20", 100),
            sale("B", "2024-01-05", 50),
            sale("C", "2024-02-01", 100), sale("C", "2024-02-15", 100),
            sale("D", "unknown", 20),
        ]

    def test_scores(self):
        scores = calc_rfm_scores(self.sales, Settings())
        by_customer = {s.customer: s for s in scores}
        self.assertEqual(by_customer["A"].recency, 0)
        self.assertEqual(by_customer["B"].recency, 2)
        self.assertEqual(by_customer["C"].recency, 1)
        self.assertEqual(by_customer["D"].recency, 999)
        self.assertEqual((by_customer["A"].r_score, by_customer["A"].f_score, by_customer["A"].m_score), (5, 5, 5))
        self.assertEqual((by_customer["C"].r_score, by_customer["C"].f_score, by_customer["C"].m_score), (4, 4, 4))
        self.assertEqual(by_customer["A"].segment, RfmSegment.VIP)
        self.assertEqual(by_customer["C"].segment, RfmSegment.VIP)
        self.assertEqual(by_customer["B"].segment, RfmSegment.LOST)
        self.assertEqual(by_customer["D"].segment, RfmSegment.LOST)
        self.assertEqual([s.customer for s in scores], ["A", "C", "B", "D"])

    def test_segment_summary(self):
        summary = calc_rfm_segment_summary(calc_rfm_scores(self.sales, Settings()))
        self.assertEqual([s.segment for s in summary], [RfmSegment.VIP, RfmSegment.LOST])
        self.assertEqual(summary[0].count, 2)
        self.assertAlmostEqual(summary[0].total_sales, 700.0)
        self.assertAlmostEqual(summary[0].share, 700 / 770)
        self.assertAlmostEqual(sum(s.share for s in summary), 1.0)

    def test_empty(self):
        self.assertEqual(calc_rfm_scores([], Settings()), [])
        self.assertEqual(calc_rfm_segment_summary([]), [])


class TestClv(unittest.TestCase):
    def setUp(self):
        self.sales = [
            sale("C1", "2024-01-10", 100),
            sale("C1", "2024-12-10", 300),
            sale("C2", "2024-06-01", 999),
        ]

    def test_formula_with_org_margin(self):
        org_profit = [OrgProfitRecord(
            org="East", sales=PlanActual(actual=1000), gross_profit=PlanActual(actual=250)
        )]
        results = calc_clv(self.sales, org_profit, settings=Settings())
        self.assertEqual(len(results), 1)
        r = results[0]
        self.assertEqual(r.customer, "C1")
        self.assertAlmostEqual(r.avg_transaction_value, 200.0)
        self.assertAlmostEqual(r.annual_frequency, 2.0)
        self.assertAlmostEqual(r.margin_rate, 0.25)
        self.assertAlmostEqual(r.tenure_years, 3.0)
        self.assertAlmostEqual(r.clv, 300.0)
        self.assertAlmostEqual(r.clv_to_sales_ratio, 0.75)

    def test_default_margin(self):
        results = calc_clv(self.sales, settings=Settings())
        self.assertAlmostEqual(results[0].margin_rate, 0.10)
        self.assertAlmostEqual(results[0].clv, 120.0)

    def test_single_transaction_customers_omitted(self):
        results = calc_clv([sale("C9", "2024-01-01", 500)], settings=Settings())
        self.assertEqual(results, [])
        summary = calc_clv_summary(results)
        self.assertEqual(summary.customer_count, 0)

    def test_margin_clamped(self):
        org_rates, overall = calc_margin_rates([OrgProfitRecord(
            org="East", sales=PlanActual(actual=1000), gross_profit=PlanActual(actual=-2000)
        )], Settings())
        self.assertAlmostEqual(org_rates["East"], -0.5)
        self.assertAlmostEqual(overall, -0.5)

    def test_retention_adjustment(self):
        settings = Settings(CLV_RETENTION_ADJUSTED=True)
        results = calc_clv(self.sales + [sale("C1", "2024-06-01", 200)], settings=settings)
        # C1 buys three times a year against an average of two
        self.assertAlmostEqual(results[0].tenure_years, 3.0)

    def test_summary(self):
        results = calc_clv(self.sales + [sale("C2", "2024-07-01", 1)], settings=Settings())
        summary = calc_clv_summary(results)
        self.assertEqual(summary.customer_count, 2)
        self.assertAlmostEqual(summary.total_clv, sum(r.clv for r in results))
        self.assertAlmostEqual(summary.top_customer_clv, results[0].clv)


class TestMigration(unittest.TestCase):
    def setUp(self):
        self.sales = [
            sale("X", "2024-01-15", 100),
            sale("X", "2024-02-15", 0),
            sale("X", "2024-03-15", 100),
            sale("Y", "2024-01-10", 50),
            sale("Y", "2024-02-10", 50),
            sale("Y", "2024-03-10", 50),
        ]

    def test_churn_then_return(self):
        result = calc_customer_migration(self.sales, Settings())
        self.assertAlmostEqual(result.thresholds.A, 100.0)
        self.assertAlmostEqual(result.thresholds.B, 70.0)
        self.assertAlmostEqual(result.thresholds.C, 50.0)

        first, second = result.summaries
        self.assertEqual((first.previous_month, first.month), ("2024-01", "2024-02"))
        self.assertEqual(first.churned, 1)
        self.assertEqual(first.maintained, 1)
        self.assertEqual(first.new_customers, 0)
        self.assertEqual(first.total_active, 1)
        self.assertEqual(second.new_customers, 1)
        self.assertEqual(second.churned, 0)
        self.assertEqual(second.total_active, 2)

        flows = result.matrices[0].flows
        self.assertEqual((flows[0].from_grade, flows[0].to_grade), (CustomerGrade.A, CustomerGrade.N))
        self.assertEqual(flows[0].customers, ["X"])

    def test_conservation(self):
        result = calc_customer_migration(self.sales, Settings())
        active = {d.month: d.A + d.B + d.C + d.D for d in result.distribution}
        for s in result.summaries:
            self.assertEqual(s.upgraded + s.maintained + s.downgraded + s.new_customers, s.total_active)
            self.assertEqual(s.total_active, active[s.month])
            self.assertEqual(s.upgraded + s.maintained + s.downgraded + s.churned, active[s.previous_month])

    def test_inactive_pairs_not_counted(self):
        flows, counts = compare_months(
            {"A": CustomerGrade.N, "B": CustomerGrade.B},
            {"A": CustomerGrade.N, "B": CustomerGrade.A},
        )
        self.assertEqual(len(flows), 1)
        self.assertEqual(counts["upgraded"], 1)
        self.assertEqual(counts["total_active"], 1)

    def test_thresholds_follow_each_dataset(self):
        first = calc_customer_migration(self.sales, Settings())
        scaled = [sale(s.customer_id, s.sale_date, s.amount * 10) for s in self.sales]
        second = calc_customer_migration(scaled, Settings())
        self.assertAlmostEqual(second.thresholds.A, first.thresholds.A * 10)
        self.assertNotEqual(second.thresholds.A, first.thresholds.A)
        again = calc_customer_migration(self.sales, Settings())
        self.assertEqual(again.thresholds, first.thresholds)

    def test_single_month(self):
        result = calc_customer_migration([sale("X", "2024-01-01", 10)], Settings())
        self.assertEqual(result.summaries, [])
        self.assertEqual(len(result.distribution), 1)


if __name__ == '__main__':
    unittest.main()
