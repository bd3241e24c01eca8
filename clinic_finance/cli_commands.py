"""
Flask CLI commands for clinic finance administration.

Commands:
- flask init-db: Create every table
- flask overdue-report: Print overdue payments and their alerts
- flask seed-service-prices: Load a default service price catalog
"""
from datetime import date
from decimal import Decimal

import click
from flask import current_app

from clinic_finance.database import create_schema, get_session
from clinic_finance.exceptions import FinanceError
from clinic_finance.models import ServicePrice

DEFAULT_SERVICE_PRICES = [
    ('Consulta', 'Consulta médica padrão', Decimal('250.00'), Decimal('180.00')),
    ('Retorno', 'Consulta de retorno em até 30 dias', Decimal('150.00'), Decimal('0.00')),
    ('Teleconsulta', 'Atendimento por vídeo', Decimal('200.00'), Decimal('150.00')),
    ('Exame Clínico', 'Avaliação clínica com exame físico', Decimal('320.00'), Decimal('240.00')),
]


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database schema."""
        create_schema()
        click.echo(click.style('✅ Database schema created', fg='green'))

    @app.cli.command('overdue-report')
    @click.option('--today', default=None, help='Reference date (YYYY-MM-DD), defaults to today')
    def overdue_report(today):
        """Print overdue payments ordered by alert priority."""
        from clinic_finance.services.overdue_service import OverdueService
        from clinic_finance.utils.dates import parse_iso_date
        from clinic_finance.utils.formatters import date_br, format_currency

        try:
            reference = parse_iso_date(today, 'today') if today else date.today()
        except FinanceError as e:
            raise click.BadParameter(e.message, param_hint='--today')

        service = OverdueService(
            get_session(),
            clock=lambda: reference,
            critical_days=current_app.config.get('ALERT_CRITICAL_DAYS', 30),
            high_days=current_app.config.get('ALERT_HIGH_DAYS', 14)
        )
        symbol = current_app.config.get('CURRENCY_SYMBOL', 'R$')

        alerts = service.generate_alerts()
        click.echo(f'Found {len(alerts)} overdue payments as of {date_br(reference)}')

        colors = {'critical': 'red', 'high': 'yellow', 'medium': 'cyan'}
        for alert in alerts:
            line = (
                f"[{alert['priority'].upper():8}] {alert['patient_name'] or '-':30} "
                f"{format_currency(alert['amount'], symbol):>14}  "
                f"vencido em {date_br(alert['due_date'])} ({alert['days_overdue']} dias)"
            )
            click.echo(click.style(line, fg=colors.get(alert['priority'])))

    @app.cli.command('seed-service-prices')
    def seed_service_prices():
        """Insert the default catalog entries that are not present yet."""
        from clinic_finance.services.service_price_service import ServicePriceService

        session = get_session()
        service = ServicePriceService(session)
        created = 0

        for name, description, base_price, insurance_price in DEFAULT_SERVICE_PRICES:
            if session.query(ServicePrice).filter_by(service_name=name).first():
                click.echo(f'   {name}: already present')
                continue
            try:
                service.create({
                    'service_name': name,
                    'description': description,
                    'base_price': base_price,
                    'insurance_price': insurance_price,
                })
                created += 1
                click.echo(click.style(f'   {name}: created', fg='green'))
            except FinanceError as e:
                click.echo(click.style(f'❌ {name}: {e.message}', fg='red'))

        click.echo(f'\n{created} service prices created')
