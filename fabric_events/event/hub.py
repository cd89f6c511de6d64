# SPDX-License-Identifier: Apache-2.0

import asyncio
import inspect
import logging
import uuid

import grpc

from fabric_events.errors import FeedDisconnected, MalformedEventData
from fabric_events.models.ledger import BlockEvent

_logger = logging.getLogger(__name__)

_CLOSE = object()


class ListenerRegistration(object):
    """Handle of one listener on an event feed.

    Every registration owns a FIFO queue drained by its own worker task,
    so a slow callback only delays itself.
    """

    def __init__(self, feed, callback, on_error=None):
        self.uuid = uuid.uuid4().hex
        self._feed = feed
        self._callback = callback
        self._on_error = on_error
        self._queue = asyncio.Queue()
        self._task = None
        self._active = True
        self._error = None
        self._closed = asyncio.Event()

    @property
    def feed(self):
        return self._feed

    @property
    def active(self):
        return self._active

    @property
    def error(self):
        """The FeedDisconnected that ended this registration, if any."""
        return self._error

    async def wait_closed(self):
        """Wait until the worker has stopped."""
        await self._closed.wait()

    def _start(self):
        self._task = asyncio.ensure_future(self._run())

    def _offer(self, block, feed_first):
        """Queue what the listener should see of a feed notification."""
        raise NotImplementedError

    def _push(self, item):
        if self._active:
            self._queue.put_nowait(item)

    def _close(self):
        if not self._active:
            return
        self._active = False
        self._queue.put_nowait(_CLOSE)

    def _fail(self, error):
        if not self._active:
            return
        self._error = error
        self._queue.put_nowait(error)
        self._close()

    async def _invoke(self, handler, item):
        try:
            result = handler(item)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.exception('listener %s failed on %r', self.uuid, item)

    async def _run(self):
        try:
            while True:
                item = await self._queue.get()
                if isinstance(item, FeedDisconnected):
                    if self._on_error is not None:
                        await self._invoke(self._on_error, item)
                    break
                if item is _CLOSE:
                    break
                # after a feed failure, drain what was queued before it
                if not self._active and self._error is None:
                    break
                await self._invoke(self._callback, item)
        finally:
            self._closed.set()

    def __repr__(self):
        return '{}(feed={!r}, uuid={})'.format(
            self.__class__.__name__, self._feed, self.uuid)


class BlockListenerRegistration(ListenerRegistration):
    """Receives BlockEvents; the first one is flagged as the ledger tip."""

    def __init__(self, feed, callback, on_error=None):
        super(BlockListenerRegistration, self).__init__(feed, callback,
                                                        on_error)
        self._seen_first = False

    def _offer(self, block, feed_first):
        is_tip = not self._seen_first
        self._seen_first = True
        self._push(BlockEvent(block, is_tip))


class ContractListenerRegistration(ListenerRegistration):
    """Receives the ContractEvents of one chaincode.

    Events of the block that was the ledger top when the feed opened
    predate the registration and are dropped.
    """

    def __init__(self, feed, callback, chaincode_name, event_name=None,
                 on_error=None, resolver=None):
        super(ContractListenerRegistration, self).__init__(feed, callback,
                                                           on_error)
        self.chaincode_name = chaincode_name
        self.event_name = event_name
        self._resolver = resolver

    def _offer(self, block, feed_first):
        if feed_first:
            _logger.debug('%s: block %d is the ledger top, baseline only',
                          self.uuid, block.number)
            return
        for event in self._resolver.chaincode_events(
                block, self.chaincode_name, self.event_name):
            self._push(event)


class EventHub(object):
    """One open feed shared by the registrations made on it.

    A single pump task reads raw blocks from the feed, resolves them and
    offers them to every registration.
    """

    def __init__(self, name, feed, resolver, include_private_data=False,
                 on_close=None):
        self._name = name
        self._feed = feed
        self._resolver = resolver
        self._include_private_data = include_private_data
        self._on_close = on_close
        self._registrations = []
        self._task = None
        self._last_block = None
        self._closed = False

    @property
    def name(self):
        return self._name

    @property
    def closed(self):
        return self._closed

    @property
    def last_seen(self):
        """Number of the last block read from the feed."""
        if self._last_block is None:
            return None
        return self._last_block.number

    def have_registrations(self):
        return self._registrations != []

    def register(self, registration):
        if self._closed:
            raise ValueError('feed {} is closed'.format(self._name))

        registration._start()
        self._registrations.append(registration)

        # a late listener still gets the current top first
        if self._last_block is not None \
                and isinstance(registration, BlockListenerRegistration):
            registration._offer(self._last_block, True)

        if self._task is None:
            self._task = asyncio.ensure_future(self._pump())
        return registration

    def unregister(self, registration):
        if registration in self._registrations:
            self._registrations.remove(registration)
        registration._close()

        if not self._registrations:
            self.disconnect()

    def _dispatch(self, block, feed_first):
        for registration in list(self._registrations):
            registration._offer(block, feed_first)

    async def _pump(self):
        cause = None
        try:
            async for raw_block in self._feed:
                try:
                    block = self._resolver.resolve_block_notification(
                        raw_block, self._include_private_data)
                except MalformedEventData as e:
                    _logger.warning('%s: skip malformed block: %s',
                                    self._name, e)
                    continue
                feed_first = self._last_block is None
                self._last_block = block
                _logger.debug('%s: block %d with %d transactions',
                              self._name, block.number,
                              len(block.transactions))
                self._dispatch(block, feed_first)
        except asyncio.CancelledError:
            raise
        except grpc.RpcError as e:
            _logger.error('%s: stream failed: %s', self._name, e)
            cause = e
        except Exception as e:
            _logger.exception('%s: feed failed', self._name)
            cause = e
        finally:
            await self._close_feed()

        self._disconnected(FeedDisconnected(self._name, cause))

    async def _close_feed(self):
        aclose = getattr(self._feed, 'aclose', None)
        if aclose is None:
            return
        try:
            await aclose()
        except RuntimeError as e:
            _logger.debug('%s: feed not closed: %s', self._name, e)

    def _disconnected(self, error):
        if self._closed:
            return
        self._closed = True
        _logger.warning('%s', error)
        for registration in self._registrations:
            registration._fail(error)
        self._registrations = []
        if self._on_close is not None:
            self._on_close(self)

    def disconnect(self):
        """Stop reading the feed. Registrations left are closed quietly."""
        if self._closed:
            return
        self._closed = True
        for registration in self._registrations:
            registration._close()
        self._registrations = []
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._on_close is not None:
            self._on_close(self)
