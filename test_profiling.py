import unittest
import sys
import os

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'backend'))

from salesperf.config import Settings
from salesperf.layers.l7_analytics.profiling import (
    momentum, calc_rep_trend, calc_rep_trends, calc_rep_product_portfolio, calc_cost_efficiency
)
from salesperf.models.schemas.records import (
    SaleRecord, OrderRecord, CollectionRecord, TeamContributionRecord, ProfitabilityRecord, PlanActual
)
from salesperf.models.schemas.schemas import Momentum


def sale(person, name, month, amount):
    return SaleRecord(
        org="East", person_id=person, person_name=name,
        customer_id="C1", sale_date=f"{month}-10", amount=amount
    )


class TestRepTrend(unittest.TestCase):
    def setUp(self):
        self.settings = Settings()
        self.sales = [
            sale("P1", "Kim", "2024-01", 100),
            sale("P1", "Kim", "2024-02", 200),
            sale("P1", "Kim", "2024-03", 300),
            sale("P2", "Lee", "2024-01", 300),
            sale("P2", "Lee", "2024-02", 300),
            sale("P2", "Lee", "2024-03", 290),
            sale("P3", "Park", "2024-01", 300),
            sale("P3", "Park", "2024-02", 200),
            sale("P3", "Park", "2024-03", 100),
        ]
        self.orders = [OrderRecord(person_id="P1", order_date="2024-02-01", amount=60)]
        self.collections = [
            CollectionRecord(person="Kim", collection_date="2024-03-15", amount=150),
            CollectionRecord(person="Nobody", collection_date="2024-03-15", amount=10),
        ]

    def test_single_rep(self):
        trend = calc_rep_trend("P1", self.sales, self.orders, self.collections, self.settings)
        self.assertEqual(trend.name, "Kim")
        self.assertEqual([m.month for m in trend.monthly], ["2024-01", "2024-02", "2024-03"])
        self.assertAlmostEqual(trend.avg_monthly_sales, 200.0)
        self.assertAlmostEqual(trend.avg_monthly_orders, 20.0)
        # collection booked under the display name counts for the id
        self.assertAlmostEqual(trend.avg_monthly_collections, 50.0)
        self.assertAlmostEqual(trend.sales_mom, 0.5)
        self.assertEqual(trend.momentum, Momentum.ACCELERATING)

    def test_all_reps(self):
        trends = calc_rep_trends(self.sales, self.orders, self.collections, self.settings)
        self.assertEqual([t.person_id for t in trends], ["P1", "P2", "P3"])
        by_id = {t.person_id: t for t in trends}
        self.assertEqual(by_id["P2"].momentum, Momentum.STABLE)
        self.assertAlmostEqual(by_id["P2"].sales_mom, -10 / 300)
        self.assertEqual(by_id["P3"].momentum, Momentum.DECELERATING)

    def test_no_activity(self):
        self.assertIsNone(calc_rep_trend("P9", self.sales, settings=self.settings))
        undated = [SaleRecord(person_id="P4", amount=100, sale_date="unknown")]
        self.assertIsNone(calc_rep_trend("P4", undated, settings=self.settings))
        self.assertEqual(calc_rep_trends([], settings=self.settings), [])

    def test_momentum_needs_history(self):
        self.assertEqual(momentum([100.0, 500.0], 300.0, self.settings), Momentum.STABLE)
        self.assertEqual(momentum([0.0, 0.0, 0.0], 0.0, self.settings), Momentum.STABLE)

    def test_previous_month_without_sales(self):
        sales = [sale("P1", "Kim", "2024-01", 0), sale("P1", "Kim", "2024-02", 100)]
        trend = calc_rep_trend("P1", sales, settings=self.settings)
        self.assertEqual(trend.sales_mom, 0.0)


class TestProductPortfolio(unittest.TestCase):
    def setUp(self):
        def item(person, product, sales, gp, name="", group=""):
            return ProfitabilityRecord(
                org="East", person=person, customer_id="C1", product_id=product,
                product_name=name, product_group=group,
                sales=PlanActual(actual=sales), gross_profit=PlanActual(actual=gp),
            )

        self.rows = [
            item("P1", "X", 400, 80, name="Wrench", group="Tools"),
            item("Kim", "X", 200, 40, name="Wrench", group="Tools"),
            item("P1", "Y", 400, 40, group="Parts"),
            item("P2", "Z", 999, 10),
        ]

    def test_mix(self):
        portfolio = calc_rep_product_portfolio(self.rows, "P1", "Kim", Settings())
        self.assertEqual([p.product for p in portfolio.products], ["X", "Y"])
        first = portfolio.products[0]
        self.assertEqual(first.name, "Wrench")
        self.assertEqual(first.group, "Tools")
        self.assertEqual(first.sales, 600.0)
        self.assertAlmostEqual(first.margin_rate, 0.2)
        self.assertAlmostEqual(first.share, 0.6)
        self.assertEqual(portfolio.products[1].name, "Y")
        self.assertAlmostEqual(portfolio.hhi, 0.52)
        self.assertAlmostEqual(portfolio.avg_margin, 0.16)
        self.assertEqual(portfolio.total_products, 2)
        self.assertEqual(portfolio.total_product_groups, 2)

    def test_top_products_limit(self):
        portfolio = calc_rep_product_portfolio(self.rows, "P1", settings=Settings(TOP_PRODUCT_LIMIT=1))
        self.assertEqual(len(portfolio.top_products), 1)
        self.assertEqual(portfolio.total_products, 2)

    def test_unknown_rep(self):
        self.assertIsNone(calc_rep_product_portfolio(self.rows, "P9", settings=Settings()))

    def test_missing_product_code(self):
        rows = [ProfitabilityRecord(person="P1", sales=PlanActual(actual=10))]
        portfolio = calc_rep_product_portfolio(rows, "P1", settings=Settings())
        self.assertEqual(portfolio.products[0].product, "(other)")
        self.assertEqual(portfolio.products[0].group, "(other)")


class TestCostEfficiency(unittest.TestCase):
    def test_rates(self):
        rows = [
            TeamContributionRecord(
                org="East", person="Kim",
                sales=PlanActual(actual=1000),
                raw_material=PlanActual(actual=200),
                purchase=PlanActual(actual=100),
                outsourcing=PlanActual(actual=50),
                mfg_variable_cost=PlanActual(actual=400),
                sga_variable_cost=PlanActual(actual=150),
                sga_fixed_cost=PlanActual(actual=100),
                contribution_margin_rate=PlanActual(actual=45.0),
                operating_margin_rate=PlanActual(actual=25.0),
            ),
            TeamContributionRecord(org="West", person="Lee", sales=PlanActual(actual=0)),
        ]
        results = calc_cost_efficiency(rows, {"Kim": "P1"})
        self.assertEqual(len(results), 1)
        row = results[0]
        self.assertEqual((row.person_id, row.org), ("P1", "East"))
        self.assertAlmostEqual(row.raw_material_rate, 0.2)
        self.assertAlmostEqual(row.purchase_rate, 0.1)
        self.assertAlmostEqual(row.outsourcing_rate, 0.05)
        self.assertAlmostEqual(row.mfg_variable_cost_rate, 0.4)
        self.assertAlmostEqual(row.variable_cost_rate, 0.15)
        self.assertAlmostEqual(row.fixed_cost_rate, 0.1)
        self.assertEqual(row.contribution_margin_rate, 45.0)
        self.assertEqual(row.operating_margin_rate, 25.0)

    def test_unmapped_person_kept_as_is(self):
        rows = [TeamContributionRecord(person="E7", sales=PlanActual(actual=10))]
        self.assertEqual(calc_cost_efficiency(rows)[0].person_id, "E7")


if __name__ == '__main__':
    unittest.main()
