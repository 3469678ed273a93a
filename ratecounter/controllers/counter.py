"""Request counter endpoint."""

from litestar import Controller, get
from litestar.datastructures import State
from litestar.enums import MediaType
from litestar.response import Response

from ratecounter.lifecycle import CounterLifecycle


def format_count(count: int, window: int) -> str:
    return f"There has been {count} requests in the last {window} seconds."


class CounterController(Controller):
    """Counts every request and reports the total for the trailing window.

    The reported total covers requests flushed into the store so far, so it
    can lag the tally by up to one flush interval.
    """

    path = "/"

    @get("/", media_type=MediaType.TEXT)
    async def counter(self, state: State) -> Response:
        lifecycle: CounterLifecycle = state.counter
        lifecycle.tally.increment()

        store = lifecycle.store
        body = format_count(store.total(lifecycle.clock()), store.window)
        if lifecycle.settings.debug:
            body += f"\nBuffer: {store.describe()}"

        return Response(content=body, media_type=MediaType.TEXT)
