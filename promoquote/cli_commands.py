"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask list-promotions: Show the promotions the engine currently sees
"""

import click
from promoquote import database
from promoquote.services.promotion_catalog_service import load_promotion_rules
from promoquote.exceptions import CatalogUnavailableError


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables first')
    def init_db_command(drop):
        """Create the database schema."""
        if drop:
            database.drop_all()
            click.echo(click.style('Dropped all tables.', fg='yellow'))
        database.create_all()
        click.echo(click.style('✅ Database schema created.', fg='green'))

    @app.cli.command('list-promotions')
    def list_promotions_command():
        """List active promotions in evaluation order (priority desc, id asc)."""
        try:
            rules = load_promotion_rules(database.get_session())
        except CatalogUnavailableError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)

        if not rules:
            click.echo('No active promotions.')
            return

        for rule in rules:
            flags = []
            if rule.is_exclusive:
                flags.append('exclusive')
            if rule.stop_further_processing:
                flags.append('stop')
            if rule.is_code_gated:
                flags.append('codes: ' + ', '.join(c.code for c in rule.codes))
            suffix = f" [{'; '.join(flags)}]" if flags else ''
            click.echo(f'#{rule.id:<5} prio={rule.priority:<4} {rule.type.value:<8} {rule.apply_scope.value:<8} {rule.name}{suffix}')
