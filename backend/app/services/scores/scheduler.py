from typing import Set

from app import socketio
from .errors import StorageFailure
from .propagator import reconcile_totals


_scheduled_apps: Set[int] = set()


def run_reconciliation_pass(app) -> dict:
    with app.app_context():
        report = reconcile_totals(grace_seconds=float(app.config.get('RECONCILE_GRACE_SEC', 30)))
        if report['users'] or report['games']:
            app.logger.info(
                f"[reconcile-timer] repaired users={len(report['users'])} games={len(report['games'])}"
            )
        return report


def schedule_reconciliation(app) -> None:
    """Start the periodic aggregate reconciliation loop for ``app``.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - No-ops when RECONCILE_INTERVAL_SEC is 0
    - Ensures a single loop per app
    - In tests a single pass runs synchronously instead of looping
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    try:
        interval = int(app.config.get('RECONCILE_INTERVAL_SEC', 0))
    except (TypeError, ValueError):
        interval = 0
    if interval <= 0:
        return

    key = id(app)
    if key in _scheduled_apps:
        app.logger.info("[reconcile-timer] already scheduled")
        return
    _scheduled_apps.add(key)
    app.logger.info(f"[reconcile-timer] every {interval}s")

    def _worker(delay: int):
        while key in _scheduled_apps:
            socketio.sleep(delay)
            try:
                run_reconciliation_pass(app)
            except StorageFailure as exc:
                app.logger.warning(f"[reconcile-timer] pass failed: {exc}")

    if app.config.get('TESTING'):
        try:
            run_reconciliation_pass(app)
        finally:
            _scheduled_apps.discard(key)
    else:
        socketio.start_background_task(_worker, interval)
