"""
Flask CLI commands for inventory reconciliation.

Commands:
- flask inventory-pending: List bills whose stock deduction is pending or partial
- flask inventory-retry: Re-run the stock deduction of those bills
"""

import click
from app.database import db_session
from app.services.inventory_service import apply_deduction, list_pending_bills


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('inventory-pending')
    @click.option('--salon-id', type=int, default=None, help='Only bills of this salon')
    def inventory_pending(salon_id):
        """List bills with incomplete inventory deduction."""
        pending = list_pending_bills(db_session, salon_id=salon_id)
        if not pending:
            click.echo(click.style('No pending inventory deductions.', fg='green'))
            return

        for entry in pending:
            click.echo(click.style(
                f"Bill {entry['bill_id']} ({entry['invoice_number']}) salon {entry['salon_id']}: "
                f"{entry['inventory_status']}, attempts={entry['attempts']}",
                fg='yellow'
            ))
            for line in entry['missing_lines']:
                click.echo(f"   - {line['product_name']} (product {line['product_id']}) x {line['quantity']}")
        click.echo(f"\n{len(pending)} bill(s) pending.")

    @app.cli.command('inventory-retry')
    @click.option('--bill-id', type=int, default=None, help='Retry a single bill')
    @click.option('--salon-id', type=int, default=None, help='Only bills of this salon')
    def inventory_retry(bill_id, salon_id):
        """Re-run the stock deduction of pending/partial bills."""
        pending = list_pending_bills(db_session, salon_id=salon_id, bill_id=bill_id)
        if not pending:
            click.echo(click.style('Nothing to retry.', fg='green'))
            return

        incomplete = 0
        for entry in pending:
            result = apply_deduction(db_session, entry['salon_id'], entry['bill_id'])
            if result.complete:
                click.echo(click.style(
                    f"Bill {entry['bill_id']} ({entry['invoice_number']}): {result.status.value}", fg='green'
                ))
            else:
                incomplete += 1
                names = ', '.join(line.product_name for line in result.failed_lines)
                click.echo(click.style(
                    f"Bill {entry['bill_id']} ({entry['invoice_number']}): {result.status.value} - failed: {names}",
                    fg='red'
                ))

        if incomplete:
            click.echo(click.style(f"\n{incomplete} bill(s) still incomplete.", fg='red', bold=True))
        else:
            click.echo(click.style('\nAll retried bills deducted.', fg='green', bold=True))
