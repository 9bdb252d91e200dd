"""A connected client: its tunnels, host prefixes, TCP ports and speed limit."""

from __future__ import annotations

import dataclasses
import logging
import socket
import threading
import time
from typing import Any, Callable, Optional

from gtunnel.config import PortUnavailable, TCPQuota, User

TASK_ID_LIMIT = 0xFFFFFFFF - 3000

log = logging.getLogger(__name__)


class HostNumberLimited(Exception):
    """The client may not register more host prefixes."""

    def __init__(self, message: str = "host number limited") -> None:
        super().__init__(message)


class NoTunnelExists(Exception):
    """The client has no tunnel to carry a task."""

    def __init__(self, message: str = "no tunnel exists") -> None:
        super().__init__(message)


class Client:
    """State of one authenticated client id.

    Tunnels are objects with an integer ``tasks_count`` attribute and the
    methods ``process(task_id, task, client)``, ``send_force_close_signal()``
    and ``close()``.
    """

    def __init__(
        self,
        client_id: str,
        user: User,
        *,
        on_empty: Optional[Callable[["Client"], None]] = None,
        on_listener: Optional[Callable[[int, socket.socket], None]] = None,
        retry_delay: float = 1.0,
    ) -> None:
        self.id = client_id
        self.host = dataclasses.replace(user.host)
        self.tcps: list[TCPQuota] = user.tcps
        self.speed = user.speed
        self.connections = user.connections

        self._on_empty = on_empty
        self._on_listener = on_listener
        self._retry_delay = retry_delay

        self._tunnels: Optional[set[Any]] = set()
        self._tunnels_lock = threading.RLock()
        self._host_prefixes: dict[str, int] = {}
        self._host_lock = threading.Lock()
        self._listeners: dict[int, socket.socket] = {}
        self._listeners_lock = threading.Lock()
        self._task_id = 0
        self._task_lock = threading.Lock()
        self._speed_lock = threading.Lock()
        self._upload_count = 0
        self._download_count = 0
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def host_prefixes(self) -> dict[str, int]:
        """A copy of the registered host prefixes and their service indexes."""
        with self._host_lock:
            return dict(self._host_prefixes)

    def get_host_prefix(self, host_prefix: str) -> Optional[int]:
        """Return the service index for ``host_prefix``, or None."""
        with self._host_lock:
            return self._host_prefixes.get(host_prefix)

    def add_host_prefix(self, host_prefix: str, service_index: int) -> None:
        """Register ``host_prefix``; raises HostNumberLimited past the limit."""
        with self._host_lock:
            limit = self.host.number
            if limit is not None and self.host.used_host >= limit:
                raise HostNumberLimited()
            self.host.used_host += 1
            self._host_prefixes[host_prefix] = service_index

    def can_add_tunnel(self) -> bool:
        """Whether another tunnel fits under the connection limit."""
        with self._tunnels_lock:
            return len(self._tunnels or ()) < self.connections

    def add_tunnel(self, tunnel: Any) -> bool:
        """Attach a tunnel; False once the client has been emptied."""
        with self._tunnels_lock:
            if self._tunnels is None:
                return False
            self._tunnels.add(tunnel)
            return True

    def remove_tunnel(self, tunnel: Any) -> None:
        """Detach a tunnel; when the last one goes the client reports itself empty."""
        with self._tunnels_lock:
            if self._tunnels is None or tunnel not in self._tunnels:
                return
            self._tunnels.discard(tunnel)
            if self._tunnels:
                return
            self._tunnels = None
            if self._on_empty is not None:
                self._on_empty(self)

    def pick_tunnel(self) -> Optional[Any]:
        """Return the least busy tunnel, counting one more task on it, or None."""
        with self._tunnels_lock:
            if not self._tunnels:
                return None
            tunnel = min(self._tunnels, key=lambda t: t.tasks_count)
            tunnel.tasks_count += 1
            return tunnel

    def _next_task_id(self) -> int:
        with self._task_lock:
            self._task_id += 1
            if self._task_id >= TASK_ID_LIMIT:
                self._task_id = 1
            return self._task_id

    def process(self, task: Any) -> int:
        """Hand ``task`` to a tunnel and return the task id used.

        Tries three times, waiting between attempts; raises NoTunnelExists
        if no tunnel appears.
        """
        task_id = self._next_task_id()
        for _ in range(3):
            tunnel = self.pick_tunnel()
            if tunnel is not None:
                break
            time.sleep(self._retry_delay)
        else:
            raise NoTunnelExists()
        tunnel.process(task_id, task, self)
        return task_id

    def open_tcp_port(self, service_index: int, port: int, random: bool) -> int:
        """Open a listening port for ``service_index`` and return its number.

        The requested port is tried first in each quota that covers it; if
        none succeeds and ``random`` is set, every port of every quota is
        tried in order. Raises PortUnavailable when nothing can be opened.
        """
        if not self.tcps:
            raise PortUnavailable("no permission to open tcp port")

        for quota in self.tcps:
            if port not in self._range_of(quota):
                continue
            if self._try_open(service_index, port, quota):
                return port

        if not random:
            raise PortUnavailable(
                "user disable random tcp port when specified tcp port failed to open"
            )
        for quota in self.tcps:
            port_range = self._range_of(quota)
            for candidate in range(port_range.minimum, port_range.maximum + 1):
                if self._try_open(service_index, candidate, quota):
                    return candidate
        raise PortUnavailable("the number of the tcp ports has reached the upper limit")

    @staticmethod
    def _range_of(quota: TCPQuota):
        return quota.port_range if quota.port_range is not None else quota.parse_range()

    def _try_open(self, service_index: int, port: int, quota: TCPQuota) -> bool:
        try:
            listener = quota.open_port(port)
        except OSError as exc:
            log.debug("failed to open tcp port %s: %s", port, exc)
            return False
        log.info("tcp port %s opened", port)
        with self._listeners_lock:
            self._listeners[service_index] = listener
        if self._on_listener is not None:
            self._on_listener(service_index, listener)
        return True

    def need_open_tcp_port(self, service_index: int) -> bool:
        """Whether ``service_index`` has no TCP listener yet."""
        with self._listeners_lock:
            return service_index not in self._listeners

    def needs_speed_limit(self) -> bool:
        """Whether a transfer speed limit applies."""
        return self.speed > 0

    def speed_limit(self, length: int, upload: bool) -> int:
        """Account ``length`` bytes and sleep whole seconds once over the limit.

        Upload and download are limited separately. Returns the seconds slept.
        """
        if self.speed <= 0:
            return 0
        with self._speed_lock:
            count = (self._upload_count if upload else self._download_count) + length
            seconds = 0
            if count >= self.speed:
                seconds = count // self.speed
                count -= seconds * self.speed
            if upload:
                self._upload_count = count
            else:
                self._download_count = count
            if seconds:
                time.sleep(seconds)
            return seconds

    def _close_listeners(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener.close()
            except OSError:
                pass

    def close(self) -> None:
        """Force-close every tunnel and listener; later calls do nothing."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        with self._tunnels_lock:
            tunnels = list(self._tunnels or ())
        for tunnel in tunnels:
            tunnel.send_force_close_signal()
            tunnel.close()
        self._close_listeners()