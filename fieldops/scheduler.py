"""
Background offer sweep.

Expires auto-assignment offers past their deadline and opens the next wave
(or returns the job to the manual pool). Runs on an interval when
ENABLE_SCHEDULER is on, and on demand via ``flask expire-offers``.

Only enable the scheduler on one instance; the sweep is safe to race but
there is no point doing the work twice.
"""

import logging

import click
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


def sweep_stale_offers(app):
    """Run one sweep inside an app context. Never raises."""
    with app.app_context():
        from fieldops import db
        from fieldops.services import get_dispatch

        try:
            summary = get_dispatch().expire_stale_offers()
            if summary['expired']:
                logger.info(
                    "Scheduler: expired %d offers, advanced %d jobs",
                    summary['expired'], summary['jobs_advanced'],
                )
            return summary
        except Exception:
            logger.exception("Offer sweep failed")
            return None
        finally:
            db.session.remove()


def register_cli(app):
    @app.cli.command('expire-offers')
    def expire_offers_command():
        """Expire stale auto-assignment offers now."""
        from fieldops.services import get_dispatch

        summary = get_dispatch().expire_stale_offers()
        click.echo(
            "Expired {expired} offers, advanced {jobs_advanced} jobs".format(**summary)
        )


def init_scheduler(app):
    """Initialize and start the background scheduler.

    Only runs if ENABLE_SCHEDULER is set.
    """
    if not app.config.get('ENABLE_SCHEDULER'):
        logger.info("Scheduler disabled (set ENABLE_SCHEDULER=true to enable)")
        return None

    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        sweep_stale_offers,
        "interval",
        seconds=app.config['OFFER_SWEEP_SECONDS'],
        args=[app],
        id="expire_stale_offers",
        name="Expire stale auto-assignment offers",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Background scheduler started (offer sweep every %ss)", app.config['OFFER_SWEEP_SECONDS'])
    app.extensions['fieldops_scheduler'] = scheduler
    return scheduler
