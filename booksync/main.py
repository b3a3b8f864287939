"""
Main entry point for the book sync service.

Wires the local store, remote client and sync session together, starts the
scheduler and serves the HTTP API.
"""

import atexit
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import Flask

from booksync.api.remote import RemoteBookClient
from booksync.collection import BookCollection
from booksync.config import SyncConfig, get_config_from_env, is_configured
from booksync.db.database import Database
from booksync.db.store import LocalBookStore
from booksync.sync.connectivity import ConnectivityMonitor
from booksync.sync.engine import SyncEngine, create_sync_engine
from booksync.sync.session import SyncSessionController
from booksync.sync.triggers import SyncTriggers
from booksync.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

VERSION = "0.1.0"


@dataclass
class Services:
    """Everything the service needs, constructed once at startup."""
    config: SyncConfig
    database: Database
    store: LocalBookStore
    remote: Optional[RemoteBookClient]
    engine: Optional[SyncEngine]
    triggers: SyncTriggers
    collection: BookCollection
    controller: SyncSessionController

    def close(self) -> None:
        self.controller.close()
        if self.remote:
            self.remote.close()
        self.database.close()


def build_services(config: SyncConfig, remote: Optional[RemoteBookClient] = None) -> Services:
    """
    Construct and wire all services.

    Args:
        config: Service configuration
        remote: Remote client to use instead of one built from config

    Returns:
        Wired services
    """
    database = Database(config.database_url)
    database.init()
    store = LocalBookStore(database)

    if remote is None and is_configured(config):
        remote = RemoteBookClient(
            config.remote_url,
            config.remote_api_key,
            timeout=config.request_timeout,
        )

    engine = create_sync_engine(
        store,
        remote,
        is_premium=config.is_premium,
        cloud_sync_limit=config.free_cloud_sync_limit,
    )

    triggers = SyncTriggers()
    collection = BookCollection(store, engine)
    controller = SyncSessionController(
        engine,
        store,
        collection,
        triggers,
        is_premium=config.is_premium,
        cloud_sync_limit=config.free_cloud_sync_limit,
        min_sync_interval_seconds=config.min_sync_interval_seconds,
    )
    collection.reload()

    return Services(
        config=config,
        database=database,
        store=store,
        remote=remote,
        engine=engine,
        triggers=triggers,
        collection=collection,
        controller=controller,
    )


def create_app(services: Services) -> Flask:
    """
    Create and configure the Flask application.

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    app.secret_key = services.config.secret_key
    app.config['SERVICES'] = services

    from booksync.web.routes.api import api_bp
    app.register_blueprint(api_bp)

    # Health check
    @app.route('/health')
    def health():
        return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()}

    return app


def start_scheduler(services: Services) -> BackgroundScheduler:
    """
    Start the periodic sync and connectivity jobs.

    Returns:
        The running scheduler
    """
    scheduler = BackgroundScheduler()
    config = services.config

    if services.remote is not None:
        monitor = ConnectivityMonitor(services.remote, services.triggers)
        scheduler.add_job(
            monitor.poll,
            trigger=IntervalTrigger(seconds=config.connectivity_check_seconds),
            id='connectivity_check',
            name='Connectivity check',
            replace_existing=True,
        )
        # Probe once right away
        scheduler.add_job(monitor.poll, trigger='date', id='initial_connectivity_check')

    services.controller.schedule(scheduler, config.sync_interval_minutes)
    scheduler.start()
    logger.info("Scheduler started", sync_interval_minutes=config.sync_interval_minutes)
    return scheduler


def main():
    """Main entry point."""
    config = get_config_from_env()
    setup_logging(config.log_level)

    logger.info(
        "Starting book sync service",
        version=VERSION,
        cloud_sync=is_configured(config),
        premium=config.is_premium,
    )

    services = build_services(config)
    app = create_app(services)
    scheduler = start_scheduler(services)

    def shutdown():
        services.controller.close()
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler shutdown")
        services.close()

    atexit.register(shutdown)

    from waitress import serve
    serve(app, host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
