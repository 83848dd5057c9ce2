"""
Unit tests for analytics module.

Tests data aggregation functions, time frame parsing,
and report generation.
"""

from datetime import UTC, datetime, timedelta
from io import BytesIO

import pandas as pd
import pytest

from analytics import BudgetStatus, LedgerAnalytics
from conftest import make_draft
from exceptions import AnalyticsError, ReportError
from ledger import LedgerStore
from report_generator import ReportGenerator


@pytest.fixture
def analytics_engine(populated_ledger):
    """Create an analytics engine over the populated ledger."""
    return LedgerAnalytics(populated_ledger)


@pytest.fixture
def report_generator():
    """Create a report generator instance."""
    return ReportGenerator()


class TestTimeFrameParsing:
    """Test time frame parsing functionality."""

    def test_parse_all_time(self, analytics_engine):
        start, end = analytics_engine.parse_time_frame('all')
        assert start.year == 1
        assert end.year == 9999
        assert start.tzinfo is not None

    def test_parse_months(self, analytics_engine):
        start, end = analytics_engine.parse_time_frame('3m')
        assert end - start == timedelta(days=90)
        assert end.tzinfo == UTC

    def test_parse_custom_range_is_end_inclusive(self, analytics_engine):
        start, end = analytics_engine.parse_time_frame('2024-01-01:2024-01-31')
        assert start == datetime(2024, 1, 1, tzinfo=UTC)
        assert end == datetime(2024, 2, 1, tzinfo=UTC)

    @pytest.mark.parametrize("time_frame", [
        'xm', '2024-13-01:2024-01-01', 'weekly', '2024-01-01', '2024-01-01:9999-12-31', '99999999m',
    ])
    def test_invalid_time_frames(self, analytics_engine, time_frame):
        with pytest.raises(AnalyticsError):
            analytics_engine.parse_time_frame(time_frame)


class TestSummaries:
    """Test income/expense summaries."""

    def test_all_time_summary_uses_aggregates(self, analytics_engine):
        summary = analytics_engine.get_income_expense_summary('all')
        assert summary['total_income'] == 3000
        assert summary['total_expenses'] == 150
        assert summary['balance'] == 2850
        assert summary['income_count'] == 1
        assert summary['expense_count'] == 3
        assert summary['total_count'] == 4
        assert summary['budget_utilization'] == pytest.approx(15.0)

    def test_custom_range_summary(self, analytics_engine):
        summary = analytics_engine.get_income_expense_summary('2024-03-01:2024-03-31')
        assert summary['total_income'] == 0
        assert summary['total_expenses'] == 110
        assert summary['balance'] == -110
        assert summary['total_count'] == 2

    def test_empty_ledger(self):
        summary = LedgerAnalytics(LedgerStore(categories=[])).get_income_expense_summary('all')
        assert summary['total_income'] == 0
        assert summary['total_count'] == 0

    def test_items_dataframe_is_oldest_first(self, analytics_engine):
        df = analytics_engine.items_dataframe()
        assert list(df['name']) == ['Salary', 'Market', 'Bus pass', 'Restaurant']
        assert df.loc[1, 'tags'] == 'weekly'


class TestCategoryAnalytics:
    """Test category breakdown and budget status."""

    def test_category_breakdown(self, analytics_engine):
        df = analytics_engine.get_category_breakdown('all')
        assert list(df['category']) == ['Food', 'Transport']
        assert list(df['total']) == [120.0, 30.0]
        assert list(df['count']) == [2, 1]
        assert df['percentage'].sum() == pytest.approx(100.0)

    def test_breakdown_includes_dangling_and_uncategorized(self, populated_ledger):
        populated_ledger.add_item(make_draft("Gift", 20.0, "Nowhere"))
        populated_ledger.add_item(make_draft("Misc", 5.0, ""))
        df = LedgerAnalytics(populated_ledger).get_category_breakdown('all')
        assert 'Nowhere' in set(df['category'])
        assert 'Uncategorized' in set(df['category'])

    def test_breakdown_with_income(self, analytics_engine):
        df = analytics_engine.get_category_breakdown('all', expense_only=False)
        assert df['total'].sum() == pytest.approx(3150)

    def test_empty_breakdown(self, analytics_engine):
        df = analytics_engine.get_category_breakdown('2020-01-01:2020-01-31')
        assert df.empty
        assert list(df.columns) == ['category', 'total', 'count', 'percentage']

    def test_category_status(self, analytics_engine):
        statuses = analytics_engine.get_category_status()
        food, transport = statuses
        assert food.category == 'Food'
        assert food.spent == 120
        assert food.remaining == -20
        assert food.over_budget
        assert food.percentage_used == pytest.approx(120.0)
        assert transport.remaining == 20
        assert not transport.over_budget

    def test_no_limit_is_never_over_budget(self):
        status = BudgetStatus(category='X', limit=0.0, spent=10.0, remaining=-10.0, percentage_used=0.0)
        assert not status.over_budget


class TestTrends:
    """Test monthly trends and top expenses."""

    def test_monthly_trends(self, analytics_engine):
        df = analytics_engine.get_monthly_trends('all')
        assert list(df['period']) == ['2024-02', '2024-03']
        assert list(df['income']) == [3000.0, 0.0]
        assert list(df['expenses']) == [40.0, 110.0]
        assert list(df['net']) == [2960.0, -110.0]

    def test_top_expenses(self, analytics_engine):
        df = analytics_engine.get_top_expenses(limit=2)
        assert list(df['name']) == ['Restaurant', 'Market']
        assert df.loc[0, 'date'] == '2024-03-20'

    def test_top_expenses_empty(self):
        df = LedgerAnalytics(LedgerStore(categories=[])).get_top_expenses()
        assert df.empty


class TestReportGenerator:
    """Test report generation functionality."""

    def test_format_currency(self, report_generator):
        assert report_generator.format_currency(1234.5) == "$1,234.50"
        assert report_generator.format_currency(-12) == "-$12.00"
        assert ReportGenerator(currency_symbol="€").format_currency(3) == "€3.00"

    def test_format_percentage(self, report_generator):
        assert report_generator.format_percentage(12.345) == "12.3%"

    def test_income_expense_report(self, report_generator, analytics_engine):
        report = report_generator.generate_income_expense_report(
            analytics_engine.get_income_expense_summary('all'), 'all'
        )
        assert "INCOME & EXPENSE SUMMARY (all)" in report
        assert "$3,000.00" in report
        assert "$2,850.00" in report

    def test_category_report_top_n(self, report_generator, analytics_engine):
        report = report_generator.generate_category_report(analytics_engine.get_category_breakdown(), top_n=1)
        assert "Food" in report
        assert "Transport" not in report

    def test_category_report_empty(self, report_generator):
        report = report_generator.generate_category_report(pd.DataFrame(), '1m')
        assert "No spending data" in report

    def test_budget_status_report_flags_overspend(self, report_generator, analytics_engine):
        report = report_generator.generate_budget_status_report(analytics_engine.get_category_status())
        food_line = next(line for line in report.splitlines() if line.startswith("Food"))
        transport_line = next(line for line in report.splitlines() if line.startswith("Transport"))
        assert food_line.endswith("OVER")
        assert not transport_line.endswith("OVER")

    def test_monthly_trends_report(self, report_generator, analytics_engine):
        report = report_generator.generate_monthly_trends_report(analytics_engine.get_monthly_trends())
        assert "2024-02" in report
        assert "AVERAGE" in report

    def test_reconciliation_report(self, report_generator, populated_ledger):
        assert "balanced" in report_generator.generate_reconciliation_report(populated_ledger.reconcile())

        populated_ledger.add_item(make_draft("Lost", 9.0, "Ghost"))
        report = report_generator.generate_reconciliation_report(populated_ledger.reconcile())
        assert "expenses outside any category" in report
        assert "Lost" in report

    def test_export_to_csv(self, report_generator, analytics_engine, tmp_path):
        path = tmp_path / "categories.csv"
        report_generator.export_to_csv(analytics_engine.get_category_breakdown(), path, "categories")
        exported = pd.read_csv(path)
        assert list(exported['category']) == ['Food', 'Transport']

    def test_export_to_csv_failure(self, report_generator, tmp_path):
        with pytest.raises(ReportError):
            report_generator.export_to_csv(pd.DataFrame({'a': [1]}), tmp_path / "missing" / "x.csv")

    def test_charts_return_png_buffers(self, report_generator, analytics_engine):
        pie = report_generator.create_category_pie_chart(analytics_engine.get_category_breakdown())
        trend = report_generator.create_monthly_trend_chart(analytics_engine.get_monthly_trends())
        for buf in (pie, trend):
            assert isinstance(buf, BytesIO)
            assert buf.read(8).startswith(b"\x89PNG")

    def test_chart_written_to_file(self, report_generator, analytics_engine, tmp_path):
        path = tmp_path / "pie.png"
        result = report_generator.create_category_pie_chart(analytics_engine.get_category_breakdown(), output_path=path)
        assert result is None
        assert path.exists()

    def test_empty_charts_return_none(self, report_generator):
        assert report_generator.create_category_pie_chart(pd.DataFrame()) is None
        assert report_generator.create_monthly_trend_chart(pd.DataFrame()) is None
