"""ASGI application factory for ratecounter.

The persisted window is restored and reconciled while the application is
built, so no request is served before the store reflects the present. The
flush scheduler runs for the lifetime of the application and the final
snapshot is written from the shutdown hook.
"""

import logging
import time
from collections.abc import Callable

from litestar import Litestar, Router

from ratecounter.config import Settings, get_settings
from ratecounter.controllers import CounterController
from ratecounter.lib import observability
from ratecounter.lifecycle import CounterLifecycle

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    clock: Callable[[], float] = time.time,
) -> Litestar:
    """Create and configure the Litestar application."""
    if settings is None:
        settings = get_settings()

    observability.configure(settings)

    lifecycle = CounterLifecycle.open(settings, clock=clock)

    async def on_startup(_app: Litestar) -> None:
        """Start draining the request tally into the window."""
        await lifecycle.startup()
        logger.info(
            "Counting requests on %s over %ss (%s strategy)",
            settings.route,
            settings.window_seconds,
            settings.strategy,
        )

    async def on_shutdown(_app: Litestar) -> None:
        """Stop the scheduler and persist the window."""
        await lifecycle.shutdown()

    app = Litestar(
        route_handlers=[Router(path=settings.route, route_handlers=[CounterController])],
        on_startup=[on_startup],
        on_shutdown=[on_shutdown],
        debug=settings.debug,
    )
    app.state.counter = lifecycle
    return app
