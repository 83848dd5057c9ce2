"""
Report generator module for formatting ledger analytics.

This module provides functions to format analytics data into
various output formats including text tables, CSV, and visualizations.
"""

import logging
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for CLI
import matplotlib.pyplot as plt
import pandas as pd

from analytics import BudgetStatus
from exceptions import ReportError
from ledger_models import ReconciliationReport

logger = logging.getLogger(__name__)


class ReportGenerator:
    """
    Generate formatted reports from analytics data.

    Supports multiple output formats: text tables, CSV, and
    visualizations (matplotlib for CLI/export, designed to
    work alongside Altair for web UI).
    """

    def __init__(self, currency_symbol: str = '$'):
        """Initialize the report generator."""
        self.currency_symbol = currency_symbol

    def format_currency(self, amount: float) -> str:
        """Format amount as currency string, with the sign ahead of the symbol."""
        sign = '-' if amount < 0 else ''
        return f"{sign}{self.currency_symbol}{abs(amount):,.2f}"

    def format_percentage(self, percentage: float) -> str:
        return f"{percentage:.1f}%"

    def generate_income_expense_report(self, summary: Dict, time_frame: str = 'all') -> str:
        """
        Generate text report for income/expense summary.

        Args:
            summary: Summary dictionary from LedgerAnalytics.get_income_expense_summary
            time_frame: Time frame label

        Returns:
            Formatted text report
        """
        report_lines = [
            "=" * 80,
            f"INCOME & EXPENSE SUMMARY ({time_frame})",
            "=" * 80,
            "",
            f"Total Income:           {self.format_currency(summary['total_income']):>20}  ({summary['income_count']} items)",
            f"Total Expenses:         {self.format_currency(summary['total_expenses']):>20}  ({summary['expense_count']} items)",
            "-" * 80,
            f"Balance:                {self.format_currency(summary['balance']):>20}",
            "",
            f"Monthly Budget:         {self.format_currency(summary['monthly_budget']):>20}",
            f"Budget Used:            {self.format_percentage(summary['budget_utilization']):>20}",
            "=" * 80
        ]

        return "\n".join(report_lines)

    def generate_category_report(
        self,
        df: pd.DataFrame,
        time_frame: str = 'all',
        top_n: Optional[int] = None
    ) -> str:
        """
        Generate text report for category breakdown.

        Args:
            df: Category breakdown DataFrame
            time_frame: Time frame label
            top_n: Optional limit to top N categories

        Returns:
            Formatted text report
        """
        if df.empty:
            return f"\nNo spending data found for time frame: {time_frame}\n"

        if top_n:
            df = df.head(top_n)

        report_lines = [
            "=" * 80,
            f"CATEGORY BREAKDOWN ({time_frame})",
            "=" * 80,
            "",
            f"{'Category':<30} {'Total':>15} {'Count':>10} {'Percentage':>12}",
            "-" * 80
        ]

        for _, row in df.iterrows():
            report_lines.append(
                f"{row['category']:<30} "
                f"{self.format_currency(row['total']):>15} "
                f"{int(row['count']):>10} "
                f"{self.format_percentage(row['percentage']):>12}"
            )

        report_lines.extend([
            "-" * 80,
            f"{'TOTAL':<30} {self.format_currency(df['total'].sum()):>15} {int(df['count'].sum()):>10}",
            "=" * 80
        ])

        return "\n".join(report_lines)

    def generate_budget_status_report(self, statuses: Iterable[BudgetStatus]) -> str:
        """
        Generate text report of limit, spent and remaining per category.

        Categories over their limit are flagged.
        """
        statuses = list(statuses)
        if not statuses:
            return "\nNo categories defined\n"

        report_lines = [
            "=" * 90,
            "BUDGET STATUS",
            "=" * 90,
            "",
            f"{'Category':<25} {'Limit':>14} {'Spent':>14} {'Remaining':>14} {'Used':>9}",
            "-" * 90
        ]

        for status in statuses:
            flag = "  OVER" if status.over_budget else ""
            report_lines.append(
                f"{status.category:<25} "
                f"{self.format_currency(status.limit):>14} "
                f"{self.format_currency(status.spent):>14} "
                f"{self.format_currency(status.remaining):>14} "
                f"{self.format_percentage(status.percentage_used):>9}{flag}"
            )

        report_lines.append("=" * 90)
        return "\n".join(report_lines)

    def generate_monthly_trends_report(self, df: pd.DataFrame, time_frame: str = 'all') -> str:
        """
        Generate text report for monthly trends.

        Args:
            df: Monthly trends DataFrame
            time_frame: Time frame label

        Returns:
            Formatted text report
        """
        if df.empty:
            return f"\nNo trend data found for time frame: {time_frame}\n"

        report_lines = [
            "=" * 80,
            f"MONTHLY TRENDS ({time_frame})",
            "=" * 80,
            "",
            f"{'Period':<12} {'Income':>15} {'Expenses':>15} {'Net':>15} {'Net %':>10}",
            "-" * 80
        ]

        for _, row in df.iterrows():
            net_pct = (row['net'] / row['income'] * 100) if row['income'] > 0 else 0
            report_lines.append(
                f"{row['period']:<12} "
                f"{self.format_currency(row['income']):>15} "
                f"{self.format_currency(row['expenses']):>15} "
                f"{self.format_currency(row['net']):>15} "
                f"{self.format_percentage(net_pct):>10}"
            )

        report_lines.extend([
            "-" * 80,
            f"{'AVERAGE':<12} "
            f"{self.format_currency(df['income'].mean()):>15} "
            f"{self.format_currency(df['expenses'].mean()):>15} "
            f"{self.format_currency(df['net'].mean()):>15}",
            "=" * 80
        ])

        return "\n".join(report_lines)

    def generate_reconciliation_report(self, report: ReconciliationReport) -> str:
        """Generate text report comparing total expenses with category spent totals."""
        report_lines = [
            "=" * 80,
            "RECONCILIATION",
            "=" * 80,
            "",
            f"Total Expenses:         {self.format_currency(report.total_expenses):>20}",
            f"Sum of Category Spent:  {self.format_currency(report.category_spent_total):>20}",
            f"Unassigned:             {self.format_currency(report.unassigned_expenses):>20}",
            "",
            "Status: " + ("balanced" if report.is_balanced else "expenses outside any category"),
        ]

        if report.dangling_items:
            report_lines.extend(["", "Expense items with no matching category:"])
            for item in report.dangling_items:
                label = item.category or "(none)"
                report_lines.append(f"  {item.id[:8]}  {item.name:<30} {label:<20} {self.format_currency(item.amount):>14}")

        report_lines.append("=" * 80)
        return "\n".join(report_lines)

    def export_to_csv(self, df: pd.DataFrame, output_path: Union[str, Path], report_name: str = "report") -> None:
        """
        Export DataFrame to CSV file.

        Raises:
            ReportError: If the file cannot be written
        """
        try:
            df.to_csv(output_path, index=False)
            logger.info(f"Exported {report_name} to {output_path}")
        except OSError as e:
            logger.error(f"Failed to export {report_name}: {e}")
            raise ReportError(
                f"Failed to export {report_name}",
                details={"output_path": str(output_path)},
                original_error=e
            ) from e

    def _finish_figure(self, fig, output_path: Optional[Union[str, Path]], label: str) -> Optional[BytesIO]:
        fig.tight_layout()
        try:
            if output_path:
                fig.savefig(output_path, dpi=150, bbox_inches='tight')
                logger.info(f"Saved {label} to {output_path}")
                return None
            buf = BytesIO()
            fig.savefig(buf, format='png', dpi=150, bbox_inches='tight')
            buf.seek(0)
            return buf
        except OSError as e:
            raise ReportError(f"Failed to save {label}", details={"output_path": str(output_path)}, original_error=e) from e
        finally:
            plt.close(fig)

    def create_category_pie_chart(
        self,
        df: pd.DataFrame,
        output_path: Optional[Union[str, Path]] = None,
        title: str = "Spending by Category",
        colors: Optional[Dict[str, str]] = None,
        top_n: int = 10
    ) -> Optional[BytesIO]:
        """
        Create pie chart for category breakdown.

        Args:
            df: Category breakdown DataFrame
            output_path: Optional file path to save chart
            title: Chart title
            colors: Optional mapping of category name to color
            top_n: Number of top categories to show; the rest become "Other"

        Returns:
            BytesIO object if output_path is None, otherwise None
        """
        if df.empty:
            logger.warning("No data to plot pie chart")
            return None

        df_plot = df.head(top_n).copy()
        if len(df) > top_n:
            other_row = pd.DataFrame([{
                'category': 'Other',
                'total': df.iloc[top_n:]['total'].sum(),
                'count': df.iloc[top_n:]['count'].sum(),
                'percentage': df.iloc[top_n:]['percentage'].sum()
            }])
            df_plot = pd.concat([df_plot, other_row], ignore_index=True)

        slice_colors = None
        if colors:
            slice_colors = [colors.get(name, '#9ca3af') for name in df_plot['category']]

        fig, ax = plt.subplots(figsize=(10, 8))
        ax.pie(
            df_plot['total'],
            labels=df_plot['category'],
            colors=slice_colors,
            autopct='%1.1f%%',
            startangle=90,
            textprops={'fontsize': 10}
        )
        ax.set_title(title, fontsize=14, fontweight='bold', pad=20)
        ax.axis('equal')

        return self._finish_figure(fig, output_path, "pie chart")

    def create_monthly_trend_chart(
        self,
        df: pd.DataFrame,
        output_path: Optional[Union[str, Path]] = None,
        title: str = "Monthly Income & Expenses"
    ) -> Optional[BytesIO]:
        """
        Create bar chart for monthly trends with a net line.

        Returns:
            BytesIO object if output_path is None, otherwise None
        """
        if df.empty:
            logger.warning("No data to plot trend chart")
            return None

        fig, ax = plt.subplots(figsize=(12, 6))
        x = range(len(df))
        width = 0.35

        ax.bar([i - width / 2 for i in x], df['income'], width, label='Income', color='#10b981')
        ax.bar([i + width / 2 for i in x], df['expenses'], width, label='Expenses', color='#ef4444')

        ax2 = ax.twinx()
        ax2.plot(list(x), df['net'], color='#3b82f6', marker='o', linewidth=2, label='Net')
        ax2.set_ylabel(f'Net ({self.currency_symbol})', fontsize=11)
        ax2.axhline(y=0, color='gray', linestyle='--', linewidth=0.5)

        ax.set_xlabel('Period', fontsize=11)
        ax.set_ylabel(f'Amount ({self.currency_symbol})', fontsize=11)
        ax.set_title(title, fontsize=14, fontweight='bold', pad=20)
        ax.set_xticks(list(x))
        ax.set_xticklabels(df['period'], rotation=45, ha='right')
        ax.legend(loc='upper left')
        ax2.legend(loc='upper right')

        return self._finish_figure(fig, output_path, "trend chart")
