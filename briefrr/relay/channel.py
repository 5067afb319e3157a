"""
Named, bidirectional, ordered message channels between a session and the relay

A channel is a pair of endpoints. Messages arrive in send order and are never
dropped, but either side may disconnect at any time: the other side then
fails on send and sees the end of the stream on receive.
"""

import asyncio
import copy
import itertools
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ..exceptions import ChannelClosedError

logger = logging.getLogger(__name__)

ConnectListener = Callable[['Channel'], bool]

_CLOSED = object()
_channel_ids = itertools.count(1)


class Channel:
    """One endpoint of a channel"""

    def __init__(self, name: str, channel_id: int):
        self.name = name
        self.channel_id = channel_id
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._peer: Optional['Channel'] = None
        self._closed = False
        self._closed_by_remote = False
        self._disconnect_callbacks: List[Callable[['Channel'], None]] = []

    @classmethod
    def pair(cls, name: str) -> tuple:
        """Create two connected endpoints"""
        channel_id = next(_channel_ids)
        left = cls(name, channel_id)
        right = cls(name, channel_id)
        left._peer = right
        right._peer = left
        return left, right

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def closed_by_remote(self) -> bool:
        """True when the other end disconnected first"""
        return self._closed_by_remote

    def on_disconnect(self, callback: Callable[['Channel'], None]) -> None:
        """Register a callback fired once when the remote end disconnects"""
        self._disconnect_callbacks.append(callback)

    def send(self, message: Dict[str, Any]) -> None:
        """
        Post a message to the other end

        Raises:
            ChannelClosedError: If either end has disconnected
        """
        if self._closed or self._peer is None or self._peer._closed:
            raise ChannelClosedError(f"Channel {self.name}#{self.channel_id} is disconnected")
        self._peer._inbox.put_nowait(copy.deepcopy(message))

    async def receive(self) -> Dict[str, Any]:
        """
        Wait for the next message

        Raises:
            ChannelClosedError: Once the channel is disconnected and drained
        """
        if self._closed and self._inbox.empty():
            raise ChannelClosedError(f"Channel {self.name}#{self.channel_id} is disconnected")

        message = await self._inbox.get()
        if message is _CLOSED:
            # Keep the marker so later receives fail the same way
            self._inbox.put_nowait(_CLOSED)
            raise ChannelClosedError(f"Channel {self.name}#{self.channel_id} is disconnected")
        return message

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        """Iterate over incoming messages until the channel disconnects"""
        while True:
            try:
                yield await self.receive()
            except ChannelClosedError:
                return

    def disconnect(self) -> bool:
        """
        Close this end and notify the other end

        Returns:
            False if this end was already closed
        """
        if self._closed:
            return False
        self._closed = True
        self._inbox.put_nowait(_CLOSED)

        peer = self._peer
        if peer is not None and not peer._closed:
            peer._closed = True
            peer._closed_by_remote = True
            peer._inbox.put_nowait(_CLOSED)
            for callback in peer._disconnect_callbacks:
                try:
                    callback(peer)
                except Exception as e:
                    logger.error(f"Disconnect callback failed on {peer.name}#{peer.channel_id}: {e}")

        logger.debug(f"Disconnected channel {self.name}#{self.channel_id}")
        return True


class ChannelHub:
    """Connects requesting contexts to whoever listens for a channel name"""

    def __init__(self):
        self._listeners: List[ConnectListener] = []

    def on_connect(self, listener: ConnectListener) -> None:
        """
        Register a listener for new connections

        The listener receives the serving endpoint and returns True when it
        takes ownership of the channel.
        """
        self._listeners.append(listener)

    def remove_listener(self, listener: ConnectListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def connect(self, name: str) -> Channel:
        """
        Open a channel to the listener handling `name`

        If nobody accepts the connection the returned endpoint is already
        disconnected by the remote side.
        """
        client_end, server_end = Channel.pair(name)

        accepted = False
        for listener in list(self._listeners):
            if listener(server_end):
                accepted = True
                break

        if not accepted:
            logger.warning(f"No listener accepted channel {name}")
            server_end.disconnect()

        return client_end
