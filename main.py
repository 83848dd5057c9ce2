"""
Command-line entry point for the budget ledger.

Every command loads the ledger through the configured persistence backend,
applies at most one ledger command and saves the result:

    python main.py item add --name Coffee --amount 4.50 --category "Food & Dining" --type expense
    python main.py category list
    python main.py budget set 2500
    python main.py summary
    python main.py search coffee
    python main.py reconcile
    python main.py report --type all --chart-dir reports/
    python main.py ai insights
    python main.py backup create
"""

import argparse
import logging
import sys
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ai_assistant import AIAssistant
from ai_service import resolve_api_key
from ai_state import AIState
from analytics import LedgerAnalytics
from cli_viewer import (
    format_amount,
    render_categories_table,
    render_insights_table,
    render_items_table,
    render_search_results,
    render_summary,
)
from config_manager import load_config
from exceptions import BudgetAppError, LedgerValidationError
from ledger import LedgerStore
from ledger_models import BudgetItem, TransactionType, coerce_timestamp
from persistence import LedgerPersistence, create_persistence
from report_generator import ReportGenerator
from search import SearchService
from utils import ensure_data_dir, resolve_log_path
from utils.backup import create_backup, list_backups, resolve_ledger_file, restore_backup
from validation import parse_amount, validate_category_input, validate_item_input

# Configure module-level logger
logger = logging.getLogger(__name__)


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    An unknown level falls back to INFO and an unusable log file falls back
    to console-only output; both cases are reported as warnings.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging", {}) or {}
    level_name = str(log_config.get("level") or "INFO").upper()
    log_level = logging.getLevelName(level_name)
    warnings: List[str] = []
    if not isinstance(log_level, int):
        warnings.append(f"Unknown log level '{level_name}'; using INFO")
        log_level = logging.INFO

    log_format = log_config.get("format") or "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file = log_config.get("file")

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            handlers.append(logging.FileHandler(resolve_log_path(log_file)))
        except OSError as exc:
            warnings.append(f"Unable to open log file '{log_file}': {exc}; logging to console only")

    logging.basicConfig(level=log_level, format=log_format, handlers=handlers, force=True)

    for message in warnings:
        logging.getLogger(__name__).warning(message)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description="Personal budget ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Item commands
    item_parser = subparsers.add_parser("item", help="Manage income and expense items")
    item_subparsers = item_parser.add_subparsers(dest="item_action", help="Item actions")

    item_add = item_subparsers.add_parser("add", help="Add an item")
    item_add.add_argument("--name", required=True, help="Item name")
    item_add.add_argument("--amount", required=True, help="Amount (e.g. 12.50)")
    item_add.add_argument("--category", default="", help="Category name")
    item_add.add_argument("--type", required=True, choices=["income", "expense"], help="Item type")
    item_add.add_argument("--date", help="Date (YYYY-MM-DD, default: now)")
    item_add.add_argument("--description", help="Optional description")
    item_add.add_argument("--tags", help="Comma-separated tags")

    item_update = item_subparsers.add_parser("update", help="Update an item")
    item_update.add_argument("item_id", help="Item ID (or unique prefix)")
    item_update.add_argument("--name", help="New name")
    item_update.add_argument("--amount", help="New amount")
    item_update.add_argument("--category", help="New category name")
    item_update.add_argument("--type", choices=["income", "expense"], help="New type")
    item_update.add_argument("--date", help="New date (YYYY-MM-DD)")
    item_update.add_argument("--description", help="New description")
    item_update.add_argument("--tags", help="New comma-separated tags")

    item_delete = item_subparsers.add_parser("delete", help="Delete an item")
    item_delete.add_argument("item_id", help="Item ID (or unique prefix)")

    item_list = item_subparsers.add_parser("list", help="List items")
    item_list.add_argument("--limit", type=int, help="Maximum number of items to show")
    item_list.add_argument("--type", choices=["income", "expense"], help="Only this type")
    item_list.add_argument("--category", help="Only this category name")

    # Category commands
    category_parser = subparsers.add_parser("category", aliases=["cat"], help="Manage categories")
    category_subparsers = category_parser.add_subparsers(dest="category_action", help="Category actions")

    cat_add = category_subparsers.add_parser("add", help="Add a category")
    cat_add.add_argument("--name", required=True, help="Category name")
    cat_add.add_argument("--color", default="#6b7280", help="Color as #RRGGBB")
    cat_add.add_argument("--limit", help="Optional spending limit")

    cat_update = category_subparsers.add_parser("update", help="Update a category")
    cat_update.add_argument("category_id", help="Category ID (or unique prefix)")
    cat_update.add_argument("--name", help="New name")
    cat_update.add_argument("--color", help="New color")
    cat_update.add_argument("--limit", help="New limit (use 'none' to clear)")

    cat_delete = category_subparsers.add_parser("delete", help="Delete a category")
    cat_delete.add_argument("category_id", help="Category ID (or unique prefix)")

    category_subparsers.add_parser("list", help="List categories")

    # Budget commands
    budget_parser = subparsers.add_parser("budget", aliases=["bud"], help="Monthly budget")
    budget_subparsers = budget_parser.add_subparsers(dest="budget_action", help="Budget actions")
    bud_set = budget_subparsers.add_parser("set", help="Set the monthly budget")
    bud_set.add_argument("amount", help="Monthly budget amount")
    budget_subparsers.add_parser("status", help="Show budget status per category")

    subparsers.add_parser("summary", help="Show totals and balance")

    # Search command
    search_parser = subparsers.add_parser("search", help="Fuzzy search items")
    search_parser.add_argument("query", nargs="?", default="", help="Search text")
    search_parser.add_argument("--type", choices=["income", "expense"], help="Only this type")
    search_parser.add_argument("--category", help="Only this category name")
    search_parser.add_argument("--amount-min", type=float, help="Minimum amount (inclusive)")
    search_parser.add_argument("--amount-max", type=float, help="Maximum amount (inclusive)")
    search_parser.add_argument("--date-start", help="Start date (YYYY-MM-DD, inclusive)")
    search_parser.add_argument("--date-end", help="End date (YYYY-MM-DD, inclusive)")
    search_parser.add_argument("--suggest", action="store_true", help="Show name/category suggestions instead")

    subparsers.add_parser("reconcile", help="Compare total expenses with category spent totals")

    # Report command
    report_parser = subparsers.add_parser("report", aliases=["analyze"], help="Generate reports")
    report_parser.add_argument(
        "--type",
        choices=["summary", "categories", "budget", "trends", "top", "all"],
        default="all",
        help="Report type (default: all)"
    )
    report_parser.add_argument(
        "--time-frame",
        default="all",
        help="Time frame: 1m, 3m, 6m, 12m, all, or YYYY-MM-DD:YYYY-MM-DD (default: all)"
    )
    report_parser.add_argument("--top-n", type=int, default=10, help="Rows for the top expenses report")
    report_parser.add_argument("--export-csv", help="Write the item table to this CSV file")
    report_parser.add_argument("--chart-dir", help="Write PNG charts to this directory")

    # AI commands
    ai_parser = subparsers.add_parser("ai", help="AI insights and content")
    ai_subparsers = ai_parser.add_subparsers(dest="ai_action", help="AI actions")
    ai_subparsers.add_parser("insights", help="Generate insights for the ledger")
    ai_blog = ai_subparsers.add_parser("blog", help="Write a blog post from the ledger")
    ai_blog.add_argument("--topic", required=True, help="Post topic")
    ai_blog.add_argument("--style", choices=["professional", "casual", "technical"], default="professional")
    ai_summary = ai_subparsers.add_parser("summary", help="Summarize the ledger")
    ai_summary.add_argument("--period", choices=["week", "month", "year"], default="month")

    # Backup commands
    backup_parser = subparsers.add_parser("backup", help="Back up or restore the ledger file")
    backup_subparsers = backup_parser.add_subparsers(dest="backup_action", help="Backup actions")
    backup_subparsers.add_parser("create", help="Create a timestamped backup")
    backup_subparsers.add_parser("list", help="List backups, newest first")
    bk_restore = backup_subparsers.add_parser("restore", help="Restore a backup")
    bk_restore.add_argument("backup_path", help="Backup file to restore")
    bk_restore.add_argument("--force", action="store_true", help="Overwrite without confirmation")

    return parser


def _currency(config: Dict[str, Any]) -> str:
    return (config.get("ui", {}) or {}).get("currency_symbol") or "$"


def _resolve_id(candidates: List[str], prefix: str, label: str) -> Optional[str]:
    """Match a full id or a unique id prefix. Returns None when nothing matches."""
    if prefix in candidates:
        return prefix
    matches = [candidate for candidate in candidates if candidate.startswith(prefix)]
    if len(matches) > 1:
        raise LedgerValidationError(f"Ambiguous {label} id '{prefix}'", details={"matches": len(matches)})
    return matches[0] if matches else None


def _save(persistence: LedgerPersistence, store: LedgerStore) -> int:
    if persistence.save(store):
        return 0
    print(f"Error: {persistence.last_error}", file=sys.stderr)
    return 1


def handle_item_command(args: argparse.Namespace, config: Dict[str, Any], persistence: LedgerPersistence) -> int:
    """Handle item add, update, delete and list."""
    store = persistence.load()
    currency = _currency(config)

    if args.item_action == "add":
        draft = validate_item_input(
            name=args.name,
            amount=args.amount,
            category=args.category,
            type=args.type,
            date=args.date,
            description=args.description,
            tags=args.tags,
            known_categories=store.category_names(),
        )
        item = store.add_item(draft)
        print(f"Added {item.type.value} '{item.name}' ({format_amount(item.amount, currency)}) with id {item.id}")
        return _save(persistence, store)

    if args.item_action == "update":
        item_id = _resolve_id([item.id for item in store.items], args.item_id, "item")
        existing = store.get_item(item_id) if item_id else None
        if existing is None:
            print(f"No item with id '{args.item_id}'; nothing changed")
            return 0
        # a dangling category may be kept, not newly chosen
        known = store.category_names() + ([existing.category] if args.category is None else [])
        draft = validate_item_input(
            name=args.name if args.name is not None else existing.name,
            amount=args.amount if args.amount is not None else existing.amount,
            category=args.category if args.category is not None else existing.category,
            type=args.type or existing.type,
            date=args.date or existing.date,
            description=args.description if args.description is not None else existing.description,
            tags=args.tags if args.tags is not None else existing.tags,
            known_categories=known,
        )
        store.update_item(BudgetItem.from_draft(draft, existing.id))
        print(f"Updated item {existing.id}")
        return _save(persistence, store)

    if args.item_action == "delete":
        item_id = _resolve_id([item.id for item in store.items], args.item_id, "item")
        if item_id is None or not store.delete_item(item_id):
            print(f"No item with id '{args.item_id}'; nothing changed")
            return 0
        print(f"Deleted item {item_id}")
        return _save(persistence, store)

    if args.item_action == "list":
        items = list(store.items)
        if args.type:
            items = [item for item in items if item.type is TransactionType.parse(args.type)]
        if args.category:
            items = [item for item in items if item.category == args.category]
        print(render_items_table(items, limit=args.limit, currency_symbol=currency))
        return 0

    print("Specify an item action: add, update, delete or list", file=sys.stderr)
    return 1


def handle_category_command(args: argparse.Namespace, config: Dict[str, Any], persistence: LedgerPersistence) -> int:
    """Handle category add, update, delete and list."""
    store = persistence.load()
    currency = _currency(config)

    if args.category_action == "add":
        name, color, limit = validate_category_input(args.name, args.color, args.limit, store.category_names())
        category = store.add_category(name, color, limit)
        print(f"Added category '{category.name}' with id {category.id}")
        return _save(persistence, store)

    if args.category_action == "update":
        category_id = _resolve_id([c.id for c in store.categories], args.category_id, "category")
        existing = store.get_category(category_id) if category_id else None
        if existing is None:
            print(f"No category with id '{args.category_id}'; nothing changed")
            return 0
        other_names = [c.name for c in store.categories if c.id != existing.id]
        if args.limit is not None and args.limit.lower() == "none":
            limit_input = None
        elif args.limit is not None:
            limit_input = args.limit
        else:
            limit_input = existing.limit
        name, color, limit = validate_category_input(
            args.name if args.name is not None else existing.name,
            args.color if args.color is not None else existing.color,
            limit_input,
            other_names,
        )
        store.update_category(replace(existing, name=name, color=color, limit=limit))
        if name != existing.name:
            print(f"Note: items still tagged '{existing.name}' are no longer counted toward this category")
        print(f"Updated category {existing.id}")
        return _save(persistence, store)

    if args.category_action == "delete":
        category_id = _resolve_id([c.id for c in store.categories], args.category_id, "category")
        if category_id is None or not store.delete_category(category_id):
            print(f"No category with id '{args.category_id}'; nothing changed")
            return 0
        print(f"Deleted category {category_id}; its items are kept")
        return _save(persistence, store)

    if args.category_action == "list":
        print(render_categories_table(store.categories, currency_symbol=currency))
        return 0

    print("Specify a category action: add, update, delete or list", file=sys.stderr)
    return 1


def handle_budget_command(args: argparse.Namespace, config: Dict[str, Any], persistence: LedgerPersistence) -> int:
    """Handle budget set and status."""
    store = persistence.load()

    if args.budget_action == "set":
        amount = parse_amount(args.amount)
        if amount is None or amount < 0:
            raise LedgerValidationError("Invalid monthly budget", details={"errors": [f"'{args.amount}' is not a valid amount"]})
        store.set_monthly_budget(amount)
        print(f"Monthly budget set to {format_amount(amount, _currency(config))}")
        return _save(persistence, store)

    if args.budget_action == "status":
        generator = ReportGenerator(currency_symbol=_currency(config))
        print(generator.generate_budget_status_report(LedgerAnalytics(store).get_category_status()))
        print(f"\nMonthly budget used: {store.budget_utilization():.1f}%")
        return 0

    print("Specify a budget action: set or status", file=sys.stderr)
    return 1


def handle_search_command(args: argparse.Namespace, config: Dict[str, Any], persistence: LedgerPersistence) -> int:
    store = persistence.load()
    service = SearchService()
    service.initialize(store.items)

    if args.suggest:
        for suggestion in service.get_suggestions(args.query, "budget"):
            print(suggestion)
        return 0

    date_range = None
    if args.date_start or args.date_end:
        try:
            start = coerce_timestamp(args.date_start) if args.date_start else datetime.min.replace(tzinfo=UTC)
            end = coerce_timestamp(f"{args.date_end}T23:59:59.999999") if args.date_end else datetime.max.replace(tzinfo=UTC)
        except ValueError as e:
            raise LedgerValidationError("Invalid date filter", details={"errors": [str(e)]}) from e
        date_range = (start, end)

    amount_range = None
    if args.amount_min is not None or args.amount_max is not None:
        amount_range = (
            args.amount_min if args.amount_min is not None else float("-inf"),
            args.amount_max if args.amount_max is not None else float("inf"),
        )

    filtered = any(value is not None for value in (args.type, args.category, date_range, amount_range))
    if filtered:
        results = service.advanced_search(args.query, args.type, args.category, date_range, amount_range)
    else:
        results = service.search_budget_items(args.query)
    print(render_search_results(results, currency_symbol=_currency(config)))
    return 0


def handle_report_command(args: argparse.Namespace, config: Dict[str, Any], persistence: LedgerPersistence) -> int:
    """Print text reports and optionally export CSV and charts."""
    store = persistence.load()
    analytics = LedgerAnalytics(store)
    generator = ReportGenerator(currency_symbol=_currency(config))
    wanted = {"summary", "categories", "budget", "trends", "top"} if args.type == "all" else {args.type}

    if "summary" in wanted:
        print(generator.generate_income_expense_report(analytics.get_income_expense_summary(args.time_frame), args.time_frame))
    breakdown = analytics.get_category_breakdown(args.time_frame)
    if "categories" in wanted:
        print(generator.generate_category_report(breakdown, args.time_frame))
    if "budget" in wanted:
        print(generator.generate_budget_status_report(analytics.get_category_status()))
    trends = analytics.get_monthly_trends(args.time_frame)
    if "trends" in wanted:
        print(generator.generate_monthly_trends_report(trends, args.time_frame))
    if "top" in wanted:
        top = analytics.get_top_expenses(args.top_n, args.time_frame)
        print("\nTOP EXPENSES")
        print(top.to_string(index=False) if not top.empty else "No expenses found")

    if args.export_csv:
        generator.export_to_csv(analytics.items_dataframe(time_frame=args.time_frame), Path(args.export_csv), "items")
        print(f"Exported items to {args.export_csv}")

    if args.chart_dir:
        chart_dir = Path(args.chart_dir)
        chart_dir.mkdir(parents=True, exist_ok=True)
        colors = {c.name: c.color for c in store.categories}
        generator.create_category_pie_chart(breakdown, chart_dir / "category_breakdown.png", colors=colors)
        generator.create_monthly_trend_chart(trends, chart_dir / "monthly_trends.png")
        print(f"Charts written to {chart_dir}")
    return 0


def handle_ai_command(args: argparse.Namespace, config: Dict[str, Any], persistence: LedgerPersistence) -> int:
    """Run one AI flow and print its result."""
    store = persistence.load()
    state = AIState.from_config(config, api_key=resolve_api_key(config))
    assistant = AIAssistant(store, state)

    if args.ai_action == "insights":
        insights = assistant.generate_insights()
        if not state.error:
            print(render_insights_table(insights))
    elif args.ai_action == "blog":
        content = assistant.generate_blog_post(args.topic, args.style)
        if content is not None:
            print(f"# {content.title}\n\nTags: {', '.join(content.tags)}\n\n{content.content}")
    elif args.ai_action == "summary":
        summary = assistant.generate_summary(args.period)
        if summary:
            print(summary)
    else:
        print("Specify an AI action: insights, blog or summary", file=sys.stderr)
        return 1

    if state.error:
        print(f"Error: {state.error}", file=sys.stderr)
        return 1
    return 0


def handle_backup_command(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    ledger_file = resolve_ledger_file(config)

    if args.backup_action == "create":
        print(f"Backup created: {create_backup(ledger_file, config)}")
        return 0
    if args.backup_action == "list":
        backups = list_backups(ledger_path=ledger_file, config=config)
        if not backups:
            print("No backups found.")
        for path in backups:
            print(path)
        return 0
    if args.backup_action == "restore":
        if restore_backup(args.backup_path, ledger_file, force=args.force):
            print(f"Restored {args.backup_path} to {ledger_file}")
        else:
            print("Restore cancelled.")
        return 0

    print("Specify a backup action: create, list or restore", file=sys.stderr)
    return 1


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, dispatch one command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
    except BudgetAppError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    try:
        ensure_data_dir(config)
    except OSError as exc:
        print(f"Failed to prepare data directory: {exc}", file=sys.stderr)
        return 1

    setup_logging(config)

    try:
        if args.command == "backup":
            return handle_backup_command(args, config)

        persistence = create_persistence(config)
        if args.command == "item":
            return handle_item_command(args, config, persistence)
        if args.command in ("category", "cat"):
            return handle_category_command(args, config, persistence)
        if args.command in ("budget", "bud"):
            return handle_budget_command(args, config, persistence)
        if args.command == "summary":
            print(render_summary(persistence.load().snapshot(), currency_symbol=_currency(config)))
            return 0
        if args.command == "search":
            return handle_search_command(args, config, persistence)
        if args.command == "reconcile":
            generator = ReportGenerator(currency_symbol=_currency(config))
            print(generator.generate_reconciliation_report(persistence.load().reconcile()))
            return 0
        if args.command in ("report", "analyze"):
            return handle_report_command(args, config, persistence)
        if args.command == "ai":
            return handle_ai_command(args, config, persistence)
    except LedgerValidationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for problem in e.details.get("errors", []):
            print(f"  - {problem}", file=sys.stderr)
        return 1
    except BudgetAppError as e:
        logger.error(f"Command '{args.command}' failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


def main():
    """Main entry point for the application."""
    sys.exit(run())


if __name__ == "__main__":
    main()
