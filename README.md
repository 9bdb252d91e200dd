# gtunnel

Server-side building blocks for a tunnelling reverse proxy. Clients hold
long-lived tunnels to the server, and incoming HTTP, TLS and raw TCP traffic is
routed to the right client by host prefix or by an opened port. This package
provides the parsing, bookkeeping and policy parts of such a server. It uses
only the standard library.

## Modules

- `gtunnel.portrange`: `PortRange` is an inclusive port range that supports
  `in`. `parse_port_range("22-80")` gives 22–80, `parse_port_range("80")`
  gives 80–80, and `parse_port_range("0")` gives 1–65535.
  `port_range(minimum, maximum)` builds a range directly and turns a minimum
  of 0 into 1. Both raise `ValueError` for bad numbers or a minimum above the
  maximum.
- `gtunnel.blockvalue`: `BlockValue` holds a value whose `get(timeout=None)`
  waits until the first `set(value)`. It raises `TimeoutError` if the timeout
  passes before a value is set.
- `gtunnel.randstr`: `random_string(n)` returns `n` random ASCII letters and
  digits.
- `gtunnel.httpheader`: `PeekReader` wraps bytes or a binary stream and offers
  `peek`, `buffered`, `discard` and `read`. `peek_header(reader, target)` and
  `peek_host(reader)` return a header value without consuming any input.
  `parse_id_from_host(host)` returns the first label of a host name that has
  at least three labels. Errors are reported with `InvalidHeaderLength`,
  `InvalidHTTPProtocol`, `InvalidHost`, and `EOFError` when the headers end
  without the one asked for.
- `gtunnel.tlshost`: `peek_tls_host(reader)` returns the Server Name
  Indication host name from a buffered TLS ClientHello. It raises
  `TLSParseError` when the data is not such a message.
- `gtunnel.concurrentmap`: `ConcurrentMap` is a thread-safe mapping. It has
  `load`, `store`, `load_or_store`, `load_or_create`, `load_and_delete`,
  `delete`, `range(fn)` and `items()`, and supports `len` and `in`.
- `gtunnel.config`: `ServerOptions` and `default_options()` hold the server
  options. The module also provides per-user `User` records, `TCPQuota` (a
  port range plus how many ports may be opened in it) and `HostPolicy`.
  `Users` is the user store, with `merge`, `verify`, `is_empty`, `auth` and
  `is_id_conflict`. `TCPQuota.open_port` raises `PortUnavailable` once its
  quota is used up.
- `gtunnel.client`: `Client` holds one user's tunnels, host prefixes, opened
  TCP listeners and upload/download speed limit. It picks the least busy
  tunnel for each task. It raises `HostNumberLimited` and `NoTunnelExists`.
- `gtunnel.registry`: `Registry` covers the following:
  - merges users with `load_users`;
  - resolves TCP quotas with `parse_tcps`, where flag values take precedence;
  - resolves host policies with `parse_host`;
  - chooses an authentication mode with `select_auth_mode`: `"api"`,
    `"config"`, `"open"` or `"open_temp"`;
  - checks credentials with `auth_user`, which raises `InvalidUser`;
  - tracks clients and host prefixes.

  In `"api"` mode, credentials are checked by a JSON POST to
  `ServerOptions.auth_api`.

## Example

```python
from gtunnel.httpheader import PeekReader, peek_host, parse_id_from_host

reader = PeekReader(b"GET / HTTP/1.1\r\nHost: abc.id.com\r\n\r\n")
host = peek_host(reader)              # b"abc.id.com"
client_id = parse_id_from_host(host)  # b"abc"
```

Peeking never consumes data, so the whole request is still there to forward
to the client's tunnel afterwards.

```python
from gtunnel.registry import Registry

registry = Registry()
registry.load_users(None, ["id1"], ["secret"])
registry.parse_tcps()
registry.parse_host()
registry.auth_user("id1", "secret")   # raises InvalidUser on a mismatch
client, existed = registry.get_or_create_client("id1")
```

## What it does not do

The package has no network server and no command to start one. It does not:

- accept connections;
- speak the tunnel wire protocol;
- terminate TLS;
- serve the internal status API;
- run a STUN service.

`Client` works with tunnel objects supplied by the caller. Each needs a
`tasks_count` attribute and the methods `process`, `send_force_close_signal`
and `close`.

`Client.open_tcp_port` binds listening sockets and hands them to an optional
`on_listener` callback. Accepting connections on those sockets is left to the
caller.

Options are plain dataclass fields. The package does not parse command-line
flags or YAML configuration files.

## Tests

```
pip install -e ".[test]"
pytest
```