"""Server-wide bookkeeping: users, authentication, clients and host prefixes."""

from __future__ import annotations

import dataclasses
import json
import logging
import re
import threading
import time
import urllib.error
import urllib.request
from typing import Callable, Mapping, Optional, Sequence

from gtunnel.client import Client
from gtunnel.concurrentmap import ConcurrentMap
from gtunnel.config import HostPolicy, ServerOptions, TCPQuota, User, Users, default_options

log = logging.getLogger(__name__)

_DIGITS = re.compile(r"[0-9]+")
_MAX_TCP_NUMBER = 0xFFFF

MODE_API = "api"
MODE_CONFIG = "config"
MODE_OPEN = "open"
MODE_OPEN_TEMP = "open_temp"


class InvalidUser(Exception):
    """The id and secret do not identify a permitted user."""

    def __init__(self, message: str = "invalid user") -> None:
        super().__init__(message)


def _parse_tcp_number(text: str) -> int:
    if not _DIGITS.fullmatch(text) or int(text) > _MAX_TCP_NUMBER:
        raise ValueError(f"invalid tcp number: {text!r}")
    return int(text)


def _copy_quotas(quotas: Sequence[TCPQuota]) -> list[TCPQuota]:
    return [dataclasses.replace(quota) for quota in quotas]


class Registry:
    """Tracks users, connected clients and the host prefixes they serve.

    ``api_auth`` is an optional callable ``(id, secret) -> bool`` accepting
    credentials issued by the internal API service.
    """

    def __init__(
        self,
        options: Optional[ServerOptions] = None,
        *,
        api_auth: Optional[Callable[[str, str], bool]] = None,
    ) -> None:
        self.options = options if options is not None else default_options()
        self.users = Users()
        self._api_auth = api_auth
        self._clients = ConcurrentMap()
        self._host_prefixes = ConcurrentMap()
        self.auth_mode: Optional[str] = None
        self._closing = False
        self._closing_lock = threading.Lock()

    @property
    def closing(self) -> bool:
        """Whether ``close`` has been called."""
        return self._closing

    @property
    def clients(self) -> dict[str, Client]:
        """A snapshot of the connected clients by id."""
        return dict(self._clients.items())

    def load_users(
        self,
        users: Optional[Mapping[str, User]],
        ids: Optional[Sequence[str]],
        secrets: Optional[Sequence[str]],
    ) -> None:
        """Merge users from a mapping and from paired id/secret lists."""
        self.users.merge(users, ids, secrets)

    def parse_tcps(self) -> None:
        """Merge TCP quotas from options and flags, then parse every range.

        Flag values take precedence over configured ones. Users without
        quotas of their own receive a copy of the global quotas.
        """
        merged: dict[str, int] = {quota.range_spec: quota.number for quota in self.options.tcps}
        if len(self.options.tcp_numbers) != len(self.options.tcp_ranges):
            raise ValueError("the number of tcpNumber does not match the number of tcpRange")
        for number, range_spec in zip(self.options.tcp_numbers, self.options.tcp_ranges):
            merged[range_spec] = _parse_tcp_number(number)

        self.options.tcps = [TCPQuota(range_spec=spec, number=number) for spec, number in merged.items()]
        for quota in self.options.tcps:
            quota.parse_range()

        for user_id, user in self.users.items():
            updated = dataclasses.replace(user)
            updated.tcps = _copy_quotas(user.tcps or self.options.tcps)
            for quota in updated.tcps:
                quota.parse_range()
            self.users.store(user_id, updated)

    def parse_host(self) -> None:
        """Merge host policies and fill every user's unset limits from the global ones."""
        host = self.options.host
        if host.regex_str is None:
            host.regex_str = list(self.options.host_regex)
        host.regex_str = list(dict.fromkeys([*host.regex_str, *self.options.host_regex]))
        if host.number is None:
            host.number = self.options.host_number
        host.regex = [re.compile(pattern) for pattern in host.regex_str]
        if host.with_id is None:
            host.with_id = self.options.host_with_id

        for user_id, user in self.users.items():
            updated = dataclasses.replace(user)
            updated.host = dataclasses.replace(user.host)
            if not updated.tcps:
                updated.tcps = _copy_quotas(self.options.tcps)
            if updated.speed <= 0:
                updated.speed = self.options.speed
            if updated.connections <= 0:
                updated.connections = self.options.connections
            if updated.host.number is None:
                updated.host.number = host.number
            if updated.host.regex_str is None:
                updated.host.regex_str = host.regex_str
            updated.host.regex = [re.compile(pattern) for pattern in updated.host.regex_str]
            if updated.host.with_id is None:
                updated.host.with_id = host.with_id
            self.users.store(user_id, updated)

    def select_auth_mode(self) -> str:
        """Choose how users are authenticated and removed, and return the mode."""
        if self.options.auth_api:
            mode = MODE_API
        elif self.users.is_empty():
            log.warning("working on -allowAnyClient mode, because no user is configured")
            mode = MODE_OPEN
        elif not self.options.allow_any_client:
            mode = MODE_CONFIG
        else:
            mode = MODE_OPEN_TEMP
        self.auth_mode = mode
        return mode

    def _mode(self) -> str:
        return self.auth_mode if self.auth_mode is not None else self.select_auth_mode()

    def _api_accepts(self, user_id: str, secret: str) -> bool:
        return self._api_auth is not None and self._api_auth(user_id, secret)

    def auth_user(self, user_id: str, secret: str) -> None:
        """Raise InvalidUser unless the credentials are accepted."""
        mode = self._mode()
        if mode == MODE_CONFIG:
            self._auth_with_config(user_id, secret)
        elif mode == MODE_API:
            self._auth_with_remote(user_id, secret)
        else:
            self._auth_or_create(user_id, secret)

    def _auth_with_config(self, user_id: str, secret: str) -> None:
        if not user_id or not secret:
            raise InvalidUser()
        if not self.users.auth(user_id, secret) and not self._api_accepts(user_id, secret):
            raise InvalidUser()

    def _auth_with_remote(self, user_id: str, secret: str) -> None:
        if not user_id or not secret:
            raise InvalidUser()
        if not self._auth_with_api(user_id, secret) and not self._api_accepts(user_id, secret):
            raise InvalidUser()

    def _default_user(self, secret: str = "", temp: bool = False) -> User:
        return User(
            secret=secret,
            tcps=_copy_quotas(self.options.tcps),
            speed=self.options.speed,
            connections=self.options.connections,
            host=self.options.host,
            temp=temp,
        )

    def _auth_or_create(self, user_id: str, secret: str) -> None:
        if self._api_accepts(user_id, secret):
            return
        user, loaded = self.users.load_or_create(
            user_id, lambda: self._default_user(secret, temp=True)
        )
        if loaded and secret != user.secret:
            raise InvalidUser()

    def _auth_with_api(self, user_id: str, secret: str) -> bool:
        body = json.dumps({"networkClientId": user_id, "networkSecretKey": secret}).encode()
        request = urllib.request.Request(
            self.options.auth_api,
            data=body,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Request-Id": str(int(time.time())),
            },
        )
        timeout = self.options.timeout if self.options.timeout > 0 else None
        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:
                status = response.status
                payload = response.read()
        except urllib.error.HTTPError as exc:
            status = exc.code
            payload = exc.read()
        if status != 200:
            raise ConnectionError(
                f"invalid http status code {status}, body: {payload.decode(errors='replace')}"
            )
        try:
            result = json.loads(payload)["result"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ValueError("auth API response has no boolean 'result'") from exc
        if not isinstance(result, bool):
            raise ValueError("auth API response has no boolean 'result'")
        return result

    def remove_client(self, user_id: str) -> None:
        """Forget a client, and its user where the auth mode calls for it."""
        mode = self._mode()
        self._clients.delete(user_id)
        if mode == MODE_OPEN:
            self.users.delete(user_id)
        elif mode == MODE_OPEN_TEMP:
            user, found = self.users.load(user_id)
            if found and user.temp:
                self.users.delete(user_id)

    def _client_emptied(self, client: Client) -> None:
        self.remove_client(client.id)
        for host_prefix in client.host_prefixes:
            log.info("remove associated host prefix: %s", host_prefix)
            self.remove_host_prefix(host_prefix)

    def _new_client(self, user_id: str) -> Client:
        user, found = self.users.load(user_id)
        if not found or not isinstance(user, User):
            user = self._default_user()
        return Client(user_id, user, on_empty=self._client_emptied)

    def get_or_create_client(self, user_id: str) -> tuple[Client, bool]:
        """Return the client for ``user_id`` and whether it already existed."""
        return self._clients.load_or_create(user_id, lambda: self._new_client(user_id))

    def get_host_prefix(self, host_prefix: str) -> Optional[Client]:
        """Return the client serving ``host_prefix``, or None."""
        client, found = self._host_prefixes.load(host_prefix)
        return client if found and isinstance(client, Client) else None

    def add_host_prefix(self, host_prefix: str, client: Client) -> None:
        """Route ``host_prefix`` to ``client``."""
        self._host_prefixes.store(host_prefix, client)

    def remove_host_prefix(self, host_prefix: str) -> None:
        """Stop routing ``host_prefix``."""
        self._host_prefixes.delete(host_prefix)

    def close(self) -> None:
        """Close every client; later calls do nothing."""
        with self._closing_lock:
            if self._closing:
                return
            self._closing = True
        for _, client in self._clients.items():
            if isinstance(client, Client):
                client.close()
        log.info("server stopped")


__all__ = ["Registry", "InvalidUser", "HostPolicy"]