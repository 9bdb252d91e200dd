"""Server options, per-user permissions and TCP port quotas."""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import Mapping, Optional, Pattern, Sequence

from gtunnel.concurrentmap import ConcurrentMap
from gtunnel.portrange import PortRange, parse_port_range

MIN_ID_SIZE = 1
MAX_ID_SIZE = 200
MIN_SECRET_SIZE = 1
MAX_SECRET_SIZE = 200


class PortUnavailable(OSError):
    """A TCP port could not be opened for a client."""

    def __init__(self, message: str = "failed to open tcp port") -> None:
        super().__init__(message)


@dataclass
class TCPQuota:
    """A port range together with how many ports a client may open in it."""

    range_spec: str = ""
    number: int = 0
    port_range: Optional[PortRange] = None
    used_ports: int = field(default=0, compare=False)

    def parse_range(self) -> PortRange:
        """Parse ``range_spec`` into ``port_range`` and return it."""
        self.port_range = parse_port_range(self.range_spec)
        return self.port_range

    def open_port(self, port: int) -> socket.socket:
        """Listen on ``port`` on all interfaces, counting it against the quota.

        Raises PortUnavailable once the quota is used up; bind failures
        propagate as OSError and do not count.
        """
        if self.used_ports >= self.number:
            raise PortUnavailable()
        listener = socket.create_server(("", port))
        self.used_ports += 1
        return listener


@dataclass
class HostPolicy:
    """Limits on the host prefixes a user may register.

    ``None`` fields are filled from the global policy when users are prepared.
    """

    number: Optional[int] = None
    regex_str: Optional[list[str]] = None
    regex: Optional[list[Pattern[str]]] = None
    with_id: Optional[bool] = None
    used_host: int = field(default=0, compare=False)


@dataclass
class User:
    """Permissions granted to one client id."""

    secret: str = ""
    tcps: list[TCPQuota] = field(default_factory=list)
    speed: int = 0
    connections: int = 0
    host: HostPolicy = field(default_factory=HostPolicy)
    temp: bool = False


class Users(ConcurrentMap):
    """The set of known users, keyed by id."""

    def merge(
        self,
        users: Optional[Mapping[str, User]],
        ids: Optional[Sequence[str]],
        secrets: Optional[Sequence[str]],
    ) -> None:
        """Add users from a config mapping and from paired id/secret lists.

        Later entries replace earlier ones. Raises ValueError if the lists
        differ in length or any user fails verification.
        """
        for user_id, user in (users or {}).items():
            self.store(user_id, user)

        ids = list(ids or ())
        secrets = list(secrets or ())
        if len(ids) != len(secrets):
            raise ValueError("the number of id does not match the number of secret")
        for user_id, secret in zip(ids, secrets):
            self.store(user_id, User(secret=secret))

        self.verify()

    def verify(self) -> None:
        """Raise ValueError if any id or secret has an invalid length."""
        for user_id, user in self.items():
            if not MIN_ID_SIZE <= len(user_id) <= MAX_ID_SIZE:
                raise ValueError(f"invalid id length: '{user_id}'")
            if not MIN_SECRET_SIZE <= len(user.secret) <= MAX_SECRET_SIZE:
                raise ValueError(f"invalid secret length: '{user.secret}'")

    def is_empty(self) -> bool:
        """Whether no user is known."""
        return len(self) == 0

    def auth(self, user_id: str, secret: str) -> bool:
        """Whether ``user_id`` exists and has ``secret``."""
        user, found = self.load(user_id)
        return found and isinstance(user, User) and user.secret == secret

    def is_id_conflict(self, user_id: str) -> bool:
        """Whether ``user_id`` is already taken."""
        return user_id in self


@dataclass
class ServerOptions:
    """Everything that configures a server, from flags or a config file."""

    users: dict[str, User] = field(default_factory=dict)
    tcps: list[TCPQuota] = field(default_factory=list)
    host: HostPolicy = field(default_factory=HostPolicy)

    config: str = ""
    addr: str = ""
    tls_addr: str = ""
    tls_min_version: str = ""
    cert_file: str = ""
    key_file: str = ""

    ids: list[str] = field(default_factory=list)
    secrets: list[str] = field(default_factory=list)
    users_file: str = ""
    auth_api: str = ""
    allow_any_client: bool = False
    tcp_ranges: list[str] = field(default_factory=list)
    tcp_numbers: list[str] = field(default_factory=list)
    speed: int = 0
    connections: int = 0
    reconnect_times: int = 0
    reconnect_duration: float = 0.0
    host_number: int = 0
    host_regex: list[str] = field(default_factory=list)
    host_with_id: bool = False

    http_mux_header: str = ""

    timeout: float = 0.0
    timeout_on_unidirectional_traffic: bool = False

    api_addr: str = ""
    api_cert_file: str = ""
    api_key_file: str = ""
    api_tls_min_version: str = ""

    stun_addr: str = ""
    sni_addr: str = ""

    sentry_dsn: str = ""
    sentry_level: list[str] = field(default_factory=list)
    sentry_sample_rate: float = 0.0
    sentry_release: str = ""
    sentry_environment: str = ""
    sentry_server_name: str = ""
    sentry_debug: bool = False

    log_file: str = ""
    log_file_max_size: int = 0
    log_file_max_count: int = 0
    log_level: str = ""
    show_version: bool = False


def default_options() -> ServerOptions:
    """Return the options a server starts from before flags are applied."""
    return ServerOptions(
        addr="80",
        timeout=90.0,
        tls_min_version="tls1.2",
        api_tls_min_version="tls1.2",
        log_file_max_count=7,
        log_file_max_size=512 * 1024 * 1024,
        log_level="info",
        sentry_sample_rate=1.0,
        http_mux_header="Host",
        connections=10,
        reconnect_times=3,
        reconnect_duration=5 * 60.0,
        host_number=1,
    )