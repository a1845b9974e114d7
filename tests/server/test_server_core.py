"""End-to-end tests for bootserve.server.core."""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
import time

import pytest

from bootserve.config.settings import AppSettings, PooledAsyncServerSettings, ResolvedConfig
from bootserve.server import core
from bootserve.server.runtime import Runtime, size_runtime


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def _config(port: str, **server) -> ResolvedConfig:
    values = {
        "worker_threads": 2,
        "blocking_threads": 2,
        "keep_alive": 1,
        "stack_size": 0,
        "address": "127.0.0.1",
        "port": port,
    }
    values.update(server)
    return ResolvedConfig(
        server=PooledAsyncServerSettings(**values),
        app=AppSettings(app_name="e2e", version="0.1"),
    )


def _connect(port: int, deadline: float = 5.0) -> socket.socket:
    give_up = time.monotonic() + deadline
    while True:
        try:
            return socket.create_connection(("127.0.0.1", port), timeout=5)
        except ConnectionRefusedError:
            if time.monotonic() > give_up:
                raise
            time.sleep(0.02)


def _recv_exactly(sock: socket.socket, size: int) -> bytes:
    chunks = b""
    while len(chunks) < size:
        chunk = sock.recv(size - len(chunks))
        if not chunk:
            break
        chunks += chunk
    return chunks


@pytest.fixture()
def running_server():
    """Serve on a free port from a runtime worker; yield the port."""
    port = _free_port()
    config = _config(str(port))
    runtime = Runtime(size_runtime(config))
    runtime.start()
    future = runtime.spawn(core.serve(config, runtime))
    try:
        yield port
    finally:
        runtime.shutdown()
    assert future.done()


class TestServe:
    def test_single_client_gets_response(self, running_server):
        with _connect(running_server) as client:
            client.sendall(b"hello")
            assert _recv_exactly(client, 4) == b"test"
            client.sendall(b"abc")
            assert _recv_exactly(client, 4) == b"test"

    def test_concurrent_clients_are_independent(self, running_server):
        clients = [_connect(running_server) for _ in range(10)]
        try:
            for idx, client in enumerate(clients):
                client.sendall(f"client-{idx}".encode())
            replies = [_recv_exactly(client, 4) for client in clients]
            # One client going away does not affect the rest
            clients.pop().close()
            for client in clients:
                client.sendall(b"again")
            again = [_recv_exactly(client, 4) for client in clients]
        finally:
            for client in clients:
                client.close()
        assert replies == [b"test"] * 10
        assert again == [b"test"] * 9

    def test_silent_client_gets_nothing(self, running_server):
        with _connect(running_server) as client:
            client.shutdown(socket.SHUT_WR)
            assert client.recv(16) == b""

    def test_bind_failure_is_logged(self, caplog):
        config = _config("abc")
        with Runtime(size_runtime(config)) as runtime:
            runtime.block_on(core.serve(config, runtime))
        assert "tcp listener error: cannot bind 127.0.0.1:abc" in caplog.text


class TestStart:
    def test_runtime_error_is_logged(self, caplog):
        core.start(_config("0", worker_threads=0))
        assert "runtime error: worker_threads must be >= 1" in caplog.text

    def test_unbounded_keep_alive_is_a_runtime_error(self, caplog):
        core.start(_config("0", keep_alive=10**10))
        assert "runtime error: cannot build runtime: keep_alive" in caplog.text

    def test_returns_after_bind_failure(self, caplog):
        core.start(_config("99999"))
        assert "tcp listener error" in caplog.text

    def test_uses_injected_logger(self):
        records = []

        class _Collect(logging.Handler):
            def emit(self, record):
                records.append(record.getMessage())

        logger = logging.getLogger("bootserve.test-start")
        handler = _Collect()
        logger.addHandler(handler)
        try:
            core.start(_config("abc"), logger=logger)
        finally:
            logger.removeHandler(handler)
        assert any(m.startswith("tcp listener error") for m in records)


class TestRun:
    def test_resolves_config_and_starts(self, tmp_config_file, monkeypatch, caplog):
        started = []
        configured = []

        def fake_configure(settings):
            configured.append(settings)
            return logging.getLogger("bootserve")

        monkeypatch.setattr(core, "configure_logging", fake_configure)
        monkeypatch.setattr(core, "start", lambda config, logger: started.append(config))

        with caplog.at_level(logging.INFO, logger="bootserve"):
            core.run(tmp_config_file)

        assert len(started) == 1
        assert started[0].app_name == "ibis-test"
        assert started[0].source == str(tmp_config_file)
        assert configured == [started[0].logger]
        assert "Start ibis-test (version: 2.3.4)" in caplog.text
        assert "Initializing bootserve (version: 1.0.0)" in caplog.text

    def test_missing_file_runs_with_defaults(self, tmp_path, monkeypatch):
        started = []
        monkeypatch.setattr(core, "configure_logging", lambda settings: logging.getLogger("bootserve"))
        monkeypatch.setattr(core, "start", lambda config, logger: started.append(config))

        core.run(tmp_path / "missing.yaml")

        assert started[0].server == ResolvedConfig.default().server
        assert started[0].app_name == "xxx"


class TestShutdownOnExit:
    def test_open_connections_closed_when_start_returns(self, monkeypatch):
        port = _free_port()
        config = _config(str(port))
        accepted = []
        answered = threading.Event()

        async def stop_after_first(listener, spawn, handler_factory, *, logger=None):
            conn, peer = await listener.accept()
            accepted.append(peer)
            spawn(handler_factory(conn, peer).run())
            await asyncio.to_thread(answered.wait, 5)

        monkeypatch.setattr(core, "accept_loop", stop_after_first)

        server = threading.Thread(target=core.start, args=(config,))
        server.start()
        with _connect(port) as client:
            client.sendall(b"hi")
            assert _recv_exactly(client, 4) == b"test"
            answered.set()
            server.join(timeout=10)
            assert not server.is_alive()
            # Runtime shutdown at exit cancelled the still-open handler
            assert client.recv(16) == b""
        assert len(accepted) == 1
