"""Per-subscription delivery of stream items.

A ``Subscription`` is the rendezvous between the connection's reader, which
pushes items as notifications arrive, and the single consumer pulling them
from ``PlexusConnection.call``. Items are handed straight to a waiting
consumer when there is one and queued otherwise.

The ``SubscriptionRegistry`` owns every live subscription of a connection and
buffers notifications for subscription ids that have not been registered yet:
the hub may publish a subscription's first items before the response that
announces its id has been processed.
"""

import asyncio
import collections
import logging

from .messages import StreamItem, is_terminal

logger = logging.getLogger(__name__)


class Subscription:
    """One call's stream of items.

    Args:
        subscription_id (int): The id assigned by the hub
    """

    def __init__(self, subscription_id: int):
        self.id = subscription_id
        self.completed = False
        self._queue: collections.deque[StreamItem] = collections.deque()
        self._waiter: asyncio.Future[StreamItem | None] | None = None

    @property
    def drained(self) -> bool:
        """Completed and nothing left for the consumer."""
        return self.completed and not self._queue

    def deliver(self, item: StreamItem) -> bool:
        """Push one item towards the consumer.

        Returns:
            bool: False if the item was dropped because the stream had
                already received its terminal item
        """
        if self.completed:
            return False
        if is_terminal(item):
            self.completed = True

        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(item)
        else:
            self._queue.append(item)
        return True

    def close(self):
        """Mark the stream finished and wake the consumer with the sentinel."""
        self.completed = True
        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    async def next_item(self) -> StreamItem | None:
        """Pull the next item.

        Returns:
            StreamItem | None: The next item in arrival order, or None once the
                stream is finished or the connection was lost
        """
        if self._queue:
            return self._queue.popleft()
        if self.completed:
            return None

        self._waiter = asyncio.get_running_loop().create_future()
        try:
            return await self._waiter
        finally:
            self._waiter = None


class SubscriptionRegistry:
    """Live subscriptions of one connection, keyed by subscription id.

    Both the early-delivery buffer and the set of retired ids are bounded.
    Past ``early_limit`` buffered ids, the oldest id's items are dropped. Past
    ``retired_limit`` retired ids, the oldest is forgotten, and a late item
    for it is buffered like any unknown id until the buffer evicts it.

    Args:
        early_limit (int): Most subscription ids held in the early buffer
        retired_limit (int): Most finished subscription ids remembered
    """

    def __init__(self, early_limit: int = 256, retired_limit: int = 4096):
        self._subscriptions: dict[int, Subscription] = {}
        self._early: collections.OrderedDict[int, list[StreamItem]] = (
            collections.OrderedDict()
        )
        self._retired: collections.OrderedDict[int, None] = collections.OrderedDict()
        self._early_limit = early_limit
        self._retired_limit = retired_limit

    def __contains__(self, subscription_id: int) -> bool:
        return subscription_id in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def buffered(self, subscription_id: int) -> list[StreamItem]:
        """Items held for a subscription id that is not registered yet."""
        return list(self._early.get(subscription_id, ()))

    def register(self, subscription_id: int) -> Subscription:
        """Create the subscription for ``subscription_id``.

        Items that arrived before registration are moved into its queue in
        arrival order.
        """
        sub = Subscription(subscription_id)
        self._subscriptions[subscription_id] = sub
        self._retired.pop(subscription_id, None)

        for item in self._early.pop(subscription_id, ()):
            sub.deliver(item)
        return sub

    def dispatch(self, subscription_id: int, item: StreamItem):
        """Route an item received for ``subscription_id``."""
        if subscription_id in self._retired:
            logger.info(
                "Discarding item for finished subscription %s",
                subscription_id,
                extra={"item": item},
            )
            return

        sub = self._subscriptions.get(subscription_id)
        if sub is None:
            self._buffer(subscription_id, item)
            return

        if not sub.deliver(item):
            logger.info(
                "Discarding item after terminal item for subscription %s",
                subscription_id,
                extra={"item": item},
            )
        if sub.drained:
            self.release(subscription_id)

    def release(self, subscription_id: int, sub: Subscription | None = None):
        """Forget a subscription. Later items for its id are discarded.

        When ``sub`` is given, nothing happens unless it is still the
        subscription registered under that id.
        """
        current = self._subscriptions.get(subscription_id)
        if current is None or (sub is not None and current is not sub):
            return
        del self._subscriptions[subscription_id]
        self._remember_retired(subscription_id)

    def retire(self, subscription_id: int):
        """Discard items for an id nobody will register, now and later."""
        self._early.pop(subscription_id, None)
        self._remember_retired(subscription_id)

    def _remember_retired(self, subscription_id: int):
        self._retired[subscription_id] = None
        self._retired.move_to_end(subscription_id)
        while len(self._retired) > self._retired_limit:
            self._retired.popitem(last=False)

    def _buffer(self, subscription_id: int, item: StreamItem):
        items = self._early.get(subscription_id)
        if items is None:
            items = self._early[subscription_id] = []
            while len(self._early) > self._early_limit:
                (dropped, lost) = self._early.popitem(last=False)
                logger.warning(
                    "Dropping %d early items for subscription %s",
                    len(lost),
                    dropped,
                )
        items.append(item)

    def close_all(self):
        """Finish every subscription and drop all buffered state."""
        subs = list(self._subscriptions.values())
        self._subscriptions.clear()
        self._early.clear()
        self._retired.clear()
        for sub in subs:
            sub.close()
