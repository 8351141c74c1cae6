"""
Flask CLI commands for provisioning factories
"""
import re
from datetime import datetime, timedelta
import click
from flask import current_app
from portal import db
from portal.models import Factory, User, UserRole
from portal.models.setup import seed_factory_defaults
from portal.utils.plan_tiers import get_max_lines_for_tier


def slugify(value):
    return re.sub(r'[^a-z0-9]+', '-', value.lower()).strip('-')


def provision_factory(name, owner_email, owner_name, password, slug=None, tier='starter', timezone=None):
    """Create a factory on a fresh trial with an owner account and default configuration"""
    now = datetime.utcnow()
    base_slug = slug or slugify(name) or 'factory'
    slug, n = base_slug, 1
    while Factory.query.filter_by(slug=slug).first():
        n += 1
        slug = f'{base_slug}-{n}'

    factory = Factory(
        name=name,
        slug=slug,
        timezone=timezone or current_app.config.get('DEFAULT_TIMEZONE'),
        subscription_tier=tier,
        subscription_status='trialing',
        max_lines=get_max_lines_for_tier(tier),
        trial_start_date=now,
        trial_end_date=now + timedelta(days=current_app.config.get('TRIAL_DAYS', 14)),
    )
    db.session.add(factory)
    db.session.flush()

    owner = User(email=owner_email.lower(), full_name=owner_name, factory_id=factory.id)
    owner.set_password(password)
    db.session.add(owner)
    db.session.flush()
    db.session.add(UserRole(user_id=owner.id, factory_id=factory.id, role='owner'))

    seed_factory_defaults(factory.id)
    db.session.commit()
    return factory, owner


def register_commands(app):

    @app.cli.command('create-factory')
    @click.option('--name', required=True, help='Factory name')
    @click.option('--owner-email', required=True)
    @click.option('--owner-name', required=True)
    @click.option('--password', required=True, prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option('--slug', default=None)
    @click.option('--tier', default='starter', type=click.Choice(['starter', 'growth', 'scale', 'enterprise']))
    @click.option('--timezone', default=None)
    def create_factory(name, owner_email, owner_name, password, slug, tier, timezone):
        """Create a factory with an owner account and default stages/blockers"""
        if User.query.filter_by(email=owner_email.lower()).first():
            raise click.ClickException(f'User {owner_email} already exists')
        factory, owner = provision_factory(name, owner_email, owner_name, password,
                                           slug=slug, tier=tier, timezone=timezone)
        click.echo(f'Created factory {factory.name} ({factory.slug}) with owner {owner.email}')

    @app.cli.command('seed-defaults')
    @click.argument('slug')
    def seed_defaults(slug):
        """Add any missing default stages, blocker types and dropdown options"""
        factory = Factory.query.filter_by(slug=slug).first()
        if factory is None:
            raise click.ClickException(f'Factory {slug} not found')
        created = seed_factory_defaults(factory.id)
        db.session.commit()
        click.echo(f'Seeded {created} records for {factory.name}')
