# netdrills

A set of small, self-contained TCP networking exercises built on Python's
standard library: creating endpoints, opening and binding sockets, resolving
host names, working with byte buffers, exchanging length-prefixed messages
(plain and over TLS), scheduling cancellable timers, and running
request/response work servers with matching clients.

No third-party packages are needed at run time.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Library overview

| Module | What it offers |
| --- | --- |
| `netdrills.basics` | `Endpoint`, `make_endpoint`, `any_endpoint`, `open_socket`, `open_acceptor`, `resolve`, `bind_acceptor`, `connect_to`, `accept_connection` |
| `netdrills.buffers` | `StreamBuffer` (a byte FIFO with `write`, `read`, `consume`, `words`), `zero_buffer`, `iota_buffer` |
| `netdrills.framing` | `encode_length`, `decode_length`, `recv_exactly`, `send_frame`, `recv_frame`, `Session`, `FrameError` |
| `netdrills.messages` | `Person`, `WorkRequest`, `WorkResponse`, `WorkMessage` with binary and JSON forms, and `process_work_request` |
| `netdrills.fixed_message` | `send_message`, `serve_message`, `receive_message`, `serve_receive` for fixed-size messages |
| `netdrills.person_exchange` | `serve_person`, `receive_person`, `serve_person_tls`, `send_person_tls`, `serve_pattern`, `receive_pattern` |
| `netdrills.sessions` | `run_client`, `run_server` and `check_op` for a framed exchange run on a background thread |
| `netdrills.timers` | `Timer` with `expires_after`, `async_wait`, `cancel_one`, `cancel`, and `run_demo` |
| `netdrills.work_client` | `Client` with `connect`, `is_connected`, `communicate`, `close` |
| `netdrills.work_server` | `WorkServer` with `start`, `stop`, `client_count`, and `handle_request` |
| `netdrills.event_client` | `FrameReader` and `EventClient` (`connect_to_host`, `send_request`, `poll`, `close`) |
| `netdrills.threaded_server` | `ServerThread` and `ClientThread`, one thread per connection, with `on_request` |

Server functions that accept a single client take an optional `ready`
callback, called with the bound port once the socket is listening; passing
port `0` lets the system pick a free port.

### Framing

Every framed message on the wire is an 8-byte little-endian unsigned length
followed by exactly that many payload bytes. A stream that ends early raises
`FrameError`:

```python
from netdrills.framing import send_frame, recv_frame

send_frame(sock, b"payload bytes")
payload = recv_frame(sock)
```

`FrameReader` does the same reassembly for data that arrives in arbitrary
chunks: `feed()` returns every payload completed so far.

### Work messages

A `WorkMessage` carries either a `WorkRequest` (job id and workload in
milliseconds) or a `WorkResponse` (job id and completion flag). A server
answers each request by waiting for the requested workload and replying with a
completed response for the same job id:

```python
from netdrills.messages import WorkMessage, WorkRequest, process_work_request

request = WorkMessage(work_request=WorkRequest(job_id=1, workload=0))
reply = WorkMessage.from_bytes(process_work_request(request.to_bytes()))
print(reply.to_json())
```

### Talking to a work server

```python
from netdrills.work_client import Client
from netdrills.messages import WorkMessage, WorkRequest

with Client(timeout=5.0) as client:
    client.connect("127.0.0.1", 8172)
    request = WorkMessage(work_request=WorkRequest(job_id=1, workload=250))
    response = WorkMessage.from_bytes(client.communicate(request.to_bytes()))
```

`communicate` raises `TimeoutError` if no response arrives in time and
`ConnectionError` on any other failure; either way the connection is closed
and the client may connect again.

### Timers

`Timer.async_wait` must be called inside a running asyncio event loop. Each
wait completes with `SUCCESS` (0) when the timer expires, or with `CANCELLED`
when `cancel_one`, `cancel` or a new `expires_after` removes it.

## Commands

Each exercise can be run from the command line. Servers listen on all IPv4
interfaces and clients connect to `127.0.0.1`; most use port 8172.

| Command | What it does |
| --- | --- |
| `netdrills-basics <endpoint\|any\|open-socket\|open-acceptor\|resolve\|bind\|connect\|accept>` | Endpoint creation, socket opening, name resolution, binding, connecting and accepting |
| `netdrills-buffers` | Writes text into a stream buffer and reads it back word by word and in bulk |
| `netdrills-fixed-message <send\|serve\|receive\|serve-receive>` | Sends or receives one fixed 12-byte message |
| `netdrills-exchange [person\|tls\|pattern] --server` / `--client` | Exchanges a length-prefixed `Person`, a `Person` over TLS, or an 8 KiB counting pattern read into four buffers |
| `netdrills-sessions <server\|client>` | Exchanges one framed `Person` on port 8174, with the work done on a background thread |
| `netdrills-timers` | Three timers, one of which cancels a pending wait on another (`--scale` sets seconds per unit) |
| `netdrills-work-server` | Accepts many clients and answers work requests until standard input closes |
| `netdrills-work-client` | Reads workloads (milliseconds) from standard input and sends each as a job |
| `netdrills-threaded-server` | Work server that handles every connection in its own thread |
| `netdrills-event-client` | Polling work client with a response timeout |

A typical session uses two terminals:

```
netdrills-work-server
```

```
netdrills-work-client
100
250
```

Each number typed into the client becomes a job; the server waits that many
milliseconds and replies with the job marked complete, which the client prints
as JSON. Closing standard input (Ctrl-D) ends either side.

## What it does not do

- It does not create TLS certificates or keys. The `tls` mode of
  `netdrills-exchange` expects `server.crt` and `server.key` (or the files
  given with `--cert`, `--key` and `--ca`) to exist already.
- The binary message forms are produced by the `messages` module itself;
  there are no schema files and no code generation.
- The servers are exercises: they have no configuration files, no
  authentication and no persistence.