# SPDX-License-Identifier: Apache-2.0

import inspect
import logging

from fabric_events.errors import EventSetupError
from fabric_events.event.hub import BlockListenerRegistration, \
    ContractListenerRegistration, EventHub
from fabric_events.event.resolver import EventResolver
from fabric_events.util.consts import FEED_BLOCK, FEED_CONTRACT, \
    FEED_PRIVATE_BLOCK

_logger = logging.getLogger(__name__)


class EventSubscriptionManager(object):
    """Registers listeners on the contract and block feeds of a connection.

    Feeds are opened lazily, shared by the listeners of the same kind and
    closed when their last listener is removed.
    """

    def __init__(self, connection, resolver=None):
        self._connection = connection
        self._resolver = resolver or EventResolver()
        self._hubs = {}

    @property
    def resolver(self):
        return self._resolver

    async def _open_hub(self, key, open_feed, include_private_data=False):
        hub = self._hubs.get(key)
        if hub is not None and not hub.closed:
            return hub

        name = ':'.join(str(k) for k in key)
        try:
            feed = open_feed()
            if inspect.isawaitable(feed):
                feed = await feed
        except Exception as e:
            _logger.error('unable to open %s feed: %s', name, e)
            raise EventSetupError('unable to open {} feed: {}'
                                  .format(name, e)) from e

        hub = EventHub(name, feed, self._resolver,
                       include_private_data=include_private_data,
                       on_close=self._forget)
        self._hubs[key] = hub
        _logger.debug('opened %s feed', name)
        return hub

    def _forget(self, hub):
        for key, value in list(self._hubs.items()):
            if value is hub:
                del self._hubs[key]

    async def subscribe_contract_events(self, chaincode_name, callback,
                                        event_name=None, on_error=None):
        """Listen to the events emitted by a chaincode.

        :param chaincode_name: chaincode id
        :param callback: called with each ContractEvent, may be a coroutine
        :param event_name: optional regular expression on the event name
        :param on_error: called with FeedDisconnected if the feed is lost
        :return: ListenerRegistration
        :raises EventSetupError: when the feed cannot be opened
        """
        if not chaincode_name:
            raise EventSetupError('a chaincode name is required')

        hub = await self._open_hub(
            (FEED_CONTRACT, chaincode_name),
            lambda: self._connection.get_contract_events(chaincode_name))
        registration = ContractListenerRegistration(
            hub.name, callback, chaincode_name, event_name=event_name,
            on_error=on_error, resolver=self._resolver)
        return hub.register(registration)

    async def subscribe_block_events(self, callback,
                                     include_private_data=False,
                                     on_error=None):
        """Listen to every block committed on the channel.

        :param callback: called with each BlockEvent, may be a coroutine
        :param include_private_data: ask for the private read/write sets the
            caller's organization is entitled to read
        :param on_error: called with FeedDisconnected if the feed is lost
        :return: ListenerRegistration
        :raises EventSetupError: when the feed cannot be opened
        """
        key = (FEED_PRIVATE_BLOCK,) if include_private_data \
            else (FEED_BLOCK,)
        hub = await self._open_hub(
            key,
            lambda: self._connection.get_block_events(
                include_private_data=include_private_data),
            include_private_data=include_private_data)
        registration = BlockListenerRegistration(hub.name, callback,
                                                 on_error=on_error)
        return hub.register(registration)

    def unsubscribe(self, registration):
        """Remove a listener. Calling it again does nothing.

        Safe from inside the listener's own callback: the running callback
        completes, queued events are dropped.
        """
        if registration is None or not registration.active:
            return
        for hub in list(self._hubs.values()):
            if registration in hub._registrations:
                hub.unregister(registration)
                return
        registration._close()

    def close(self):
        """Disconnect every feed."""
        for hub in list(self._hubs.values()):
            hub.disconnect()
        self._hubs.clear()
