#!/usr/bin/env python3
"""
ClientDesk CLI - run the server and billing jobs from a terminal.
"""

import sys
from datetime import date

from clientdesk import config, db, paths, users
from clientdesk.billing import month_name
from clientdesk.observability import RequestContext, configure_logging
from clientdesk.reconciliation import aging_buckets, generate_monthly_invoices


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def print_table(headers: list, rows: list, widths: list = None):
    """Print a simple table."""
    if not widths:
        widths = [
            max(len(str(row[i])) for row in [headers] + rows)
            for i in range(len(headers))
        ]

    header_str = " │ ".join(str(h).ljust(w) for h, w in zip(headers, widths))
    print(header_str)
    print("─" * len(header_str))

    for row in rows:
        print(" │ ".join(str(c)[:w].ljust(w) for c, w in zip(row, widths)))


def cmd_init(args):
    """Create directories, converge the schema and the bootstrap user."""
    print_header("ClientDesk - Setup")

    for d in (paths.config_dir(), paths.data_dir(), paths.uploads_dir(), paths.out_dir()):
        print(f"  ✓ {d}")

    print("\nInitializing database...")
    result = db.run_startup_migrations()
    for error in result.get("errors", []):
        print(f"  ✗ {error}")
    info = db.get_db_info()
    print(f"  ✓ {info['path']} (schema v{info['schema_version']}, SQLite {info['sqlite_version']})")
    counts = info["row_counts"]
    print(f"    {counts.get('clients', 0)} clients, {counts.get('billing', 0)} billing records, "
          f"{counts.get('tasks', 0)} tasks")

    created = users.ensure_admin_user()
    if created:
        print(f"  ✓ Created user '{created.username}'")

    settings = config.settings_path()
    print(f"\n  {'✓' if settings.exists() else '✗'} {settings.name}"
          f"{'' if settings.exists() else ' missing (defaults in use)'}")

    print_header("Setup complete!")
    print("\nNext: python -m clientdesk serve")


def cmd_serve(args):
    """Run the API server."""
    import uvicorn

    port = int(args[0]) if args else 8420
    configure_logging()
    uvicorn.run("api.server:app", host="127.0.0.1", port=port)


def _parse_period(text: str) -> tuple[int, int]:
    try:
        year, month = (int(part) for part in text.split("-", 1))
    except ValueError:
        raise ValueError(f"Expected YYYY-MM, got {text!r}") from None
    if not 1 <= month <= 12:
        raise ValueError(f"Expected YYYY-MM, got {text!r}")
    return year, month


def cmd_generate_invoices(args):
    """Create billing records for a month (default: current)."""
    today = date.today()
    try:
        year, month = _parse_period(args[0]) if args else (today.year, today.month)
    except ValueError as e:
        print(e)
        sys.exit(1)

    db.ensure_migrations()
    result = generate_monthly_invoices(year, month)

    print_header(f"INVOICES - {month_name(month)} {year}")
    if result["created"]:
        print_table(
            ["Invoice", "Client", "Amount"],
            [[r.invoice_number, r.client_name, f"{r.amount:,.2f}"] for r in result["created"]],
        )
    else:
        print("No new invoices.")
    if result["skipped"]:
        print(f"\nSkipped {len(result['skipped'])} client(s) already billed.")


def cmd_aging(args):
    """Outstanding balances by age."""
    db.ensure_migrations()
    buckets = aging_buckets()

    print_header("RECEIVABLES AGING")
    if not buckets:
        print("Nothing outstanding.")
        return
    print_table(
        ["Bucket", "Count", f"Total ({config.CURRENCY})"],
        [[b["bucket"], b["count"], f"{b['total']:,.2f}"] for b in buckets],
    )


def cmd_create_user(args):
    """Create a login: create-user <username> <password> [full name]"""
    if len(args) < 2:
        print("Usage: create-user <username> <password> [full name]")
        sys.exit(1)

    db.ensure_migrations()
    try:
        user = users.create_user(args[0], args[1], full_name=" ".join(args[2:]))
    except ValueError as e:
        print(e)
        sys.exit(1)
    print(f"✓ Created user '{user.username}'")


def cmd_help(args):
    """Show help."""
    print("""
ClientDesk CLI

COMMANDS:
  init                      Create directories, database and admin user
  serve [port]              Run the API server (default port 8420)
  generate-invoices [YYYY-MM]
                            Create monthly billing for all billable clients
  aging                     Outstanding balances by age bucket
  create-user <user> <password> [full name]
                            Add a login
  help, h                   Show this help
""")


COMMANDS = {
    "init": cmd_init,
    "serve": cmd_serve,
    "generate-invoices": cmd_generate_invoices,
    "invoices": cmd_generate_invoices,
    "aging": cmd_aging,
    "create-user": cmd_create_user,
    "help": cmd_help,
    "h": cmd_help,
}


def main():
    """Main entry point."""
    if len(sys.argv) < 2:
        cmd_help([])
        return

    cmd = sys.argv[1]
    args = sys.argv[2:]

    if cmd in COMMANDS:
        with RequestContext(user="cli"):
            COMMANDS[cmd](args)
    else:
        print(f"Unknown command: {cmd}")
        print("Run 'help' for available commands.")


if __name__ == "__main__":
    main()
