"""CLI tools for practice growth administration."""

from datetime import datetime, timezone

import click
from pydantic import ValidationError as SchemaValidationError

from practice_growth.core.config import settings
from practice_growth.core.exceptions import GrowthError
from practice_growth.core.structured_logging import configure_logging
from practice_growth.db.session import SessionLocal
from practice_growth.schemas.org import OrgCreate
from practice_growth.services import org_service, scheduled_service


def _parse_now(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _target_org_ids(db, org_slug: str | None) -> list:
    if org_slug:
        return [org_service.get_org_by_slug(db, org_slug).id]
    return scheduled_service.list_org_ids(db)


@click.group()
def cli():
    """Practice growth CLI tools."""
    configure_logging(settings.LOG_LEVEL)


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
@click.option("--timezone", "tz", default="America/Los_Angeles", help="IANA timezone for send times")
@click.option("--google-review-url", default=None, help="Default Google review link")
def create_org(name: str, slug: str, tz: str, google_review_url: str | None):
    """
    Create an organization (practice).

    This is the bootstrap command for setting up a new tenant.

    Example:
        python -m practice_growth.cli create-org --name "Spine Center" --slug "spine-center"
    """
    try:
        data = OrgCreate(
            name=name,
            slug=slug,
            timezone=tz,
            review_links={"google": google_review_url} if google_review_url else {},
        )
    except SchemaValidationError as e:
        raise click.ClickException(str(e))

    with SessionLocal() as db:
        try:
            org = org_service.create_org(db, data)
        except GrowthError as e:
            raise click.ClickException(e.message)

        click.echo(f"✓ Created organization: {org.name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"  Slug: {org.slug}")
        click.echo(f"  Timezone: {org.timezone}")


@cli.command()
@click.option("--org-slug", default=None, help="Only this organization (default: all)")
@click.option("--now", default=None, help="ISO timestamp to evaluate at (default: current time)")
def advance_nurture(org_slug: str | None, now: str | None):
    """
    Auto-enroll and advance nurture enrollments once.

    Example:
        python -m practice_growth.cli advance-nurture --org-slug spine-center
    """
    at = _parse_now(now)
    with SessionLocal() as db:
        try:
            org_ids = _target_org_ids(db, org_slug)
        except GrowthError as e:
            raise click.ClickException(e.message)

        for org_id in org_ids:
            result = scheduled_service.run_nurture(db, org_id, now=at)
            click.echo(
                f"  {org_id}: enrolled={result['enrolled']} executed={result['executed']} "
                f"skipped={result['skipped']} failed={result['failed']} "
                f"exited={result['exited']} completed={result['completed']}"
            )
        click.echo(f"✓ Advanced nurture for {len(org_ids)} organization(s)")


@cli.command()
@click.option("--org-slug", default=None, help="Only this organization (default: all)")
@click.option("--now", default=None, help="ISO timestamp to evaluate at (default: current time)")
def run_maintenance(org_slug: str | None, now: str | None):
    """
    Expire stale referrals and review requests, apply campaign schedules and
    flag unresponsive leads.

    Example:
        python -m practice_growth.cli run-maintenance
    """
    at = _parse_now(now)
    with SessionLocal() as db:
        try:
            org_ids = _target_org_ids(db, org_slug)
        except GrowthError as e:
            raise click.ClickException(e.message)

        for org_id in org_ids:
            result = scheduled_service.run_maintenance(db, org_id, now=at)
            summary = " ".join(f"{key}={value}" for key, value in result.items())
            click.echo(f"  {org_id}: {summary}")
        click.echo(f"✓ Maintenance complete for {len(org_ids)} organization(s)")


if __name__ == "__main__":
    cli()
