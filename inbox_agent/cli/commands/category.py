"""
Category management commands for the inbox agent.
"""

import click
from pydantic import ValidationError

from inbox_agent.cli_session import get_cli_session_manager
from inbox_agent.database.models import Email
from inbox_agent.validations import CategoryService, format_validation_error


@click.group()
def category():
    """Category management commands."""
    pass


@category.command('add')
@click.argument('name')
@click.option('--description', default=None, help='What belongs in this category')
@click.option('--color', default=None, help='Hex color, e.g. #1a2b3c')
def add_category(name, description, color):
    """
    Create a category that emails are classified into.

    Example:
        python main.py category add Newsletters --description "Weekly digests"
    """
    session_manager = get_cli_session_manager()
    with session_manager.get_session() as session:
        try:
            created = CategoryService(session).create(name, description, color)
        except ValidationError as e:
            click.secho(f"✗ Invalid category: {format_validation_error(e)}", fg='red')
            raise click.Abort()
        except ValueError as e:
            click.secho(f"✗ Error: {e}", fg='red')
            raise click.Abort()

        click.secho(f"✓ Category created: [{created.id}] {created.name}", fg='green')


@category.command('update')
@click.argument('category_id', type=int)
@click.option('--name', default=None, help='New name')
@click.option('--description', default=None, help='New description ("" clears it)')
@click.option('--color', default=None, help='New hex color')
def update_category(category_id, name, description, color):
    """
    Update a category.

    Example:
        python main.py category update 3 --color #ff8800
    """
    changes = {k: v for k, v in
               (('name', name), ('description', description), ('color', color)) if v is not None}
    if not changes:
        click.echo("Nothing to update.")
        return

    session_manager = get_cli_session_manager()
    with session_manager.get_session() as session:
        try:
            updated = CategoryService(session).update(category_id, **changes)
        except ValidationError as e:
            click.secho(f"✗ Invalid category: {format_validation_error(e)}", fg='red')
            raise click.Abort()
        except (LookupError, ValueError) as e:
            click.secho(f"✗ Error: {e}", fg='red')
            raise click.Abort()

        click.secho(f"✓ Category updated: [{updated.id}] {updated.name}", fg='green')
        click.echo("Run 'python main.py classify --recategorize' to re-apply categories.")


@category.command('list')
def list_categories():
    """
    List categories with their email counts.

    Example:
        python main.py category list
    """
    session_manager = get_cli_session_manager()
    with session_manager.get_session() as session:
        categories = CategoryService(session).list()
        if not categories:
            click.echo("No categories defined.")
            return

        click.echo(f"\nCategories: {len(categories)}")
        click.echo("=" * 70)
        for cat in categories:
            count = session.query(Email).filter_by(category_id=cat.id).count()
            click.echo(f"\n[{cat.id}] {cat.name} ({cat.color})")
            if cat.description:
                click.echo(f"  {cat.description}")
            click.echo(f"  Emails: {count}")
        uncategorized = session.query(Email).filter(Email.category_id.is_(None)).count()
        click.echo(f"\nUncategorized emails: {uncategorized}")
        click.echo("=" * 70)
