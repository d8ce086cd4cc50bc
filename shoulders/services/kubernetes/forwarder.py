"""Local listener and relay loop for a port-forward session.

A PortForwardSession binds a local TCP listener, opens one stream to the
pod to confirm the port-forward subresource accepts it, and then, for every
accepted connection, opens one port-forward stream to the pod and copies bytes in
both directions until either side closes or the session is stopped.
"""

import select
import socket
import threading
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes.client import ApiException

logger = structlog.get_logger(__name__)

BUFFER_SIZE = 64 * 1024

# Opens a port-forward stream to a remote port; the stream exposes
# socket(port), error(port) and close() like kubernetes.stream.PortForward
Dialer = Callable[[int], Any]


class PortForwardSession:
    """I/O loop for one local port to remote port forwarding session.

    ``run`` blocks for the lifetime of the session and is meant to execute on
    its own thread. ``stop`` only requests termination; the accept loop and
    relays notice within ``poll_interval`` seconds.
    """

    def __init__(
        self,
        dialer: Dialer,
        local_port: int,
        remote_port: int,
        address: str = "127.0.0.1",
        poll_interval: float = 0.2,
    ):
        self.dialer = dialer
        self.local_port = local_port
        self.remote_port = remote_port
        self.address = address
        self.poll_interval = poll_interval

        self.bound_port: int | None = None
        self.connections = 0

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._relays: set[threading.Thread] = set()
        self._lock = threading.Lock()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def start(
        self,
        on_ready: Callable[[str, int], None],
        on_failed: Callable[[Exception], None],
    ) -> threading.Thread:
        """Run the session on a daemon thread."""
        self._thread = threading.Thread(
            target=self.run,
            args=(on_ready, on_failed),
            name=f"port-forward {self.local_port}:{self.remote_port}",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Request the session to stop."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the accept loop and active relays to finish."""
        if self._thread is not None:
            self._thread.join(timeout)
        with self._lock:
            relays = list(self._relays)
        for relay in relays:
            relay.join(timeout)

    def run(
        self,
        on_ready: Callable[[str, int], None],
        on_failed: Callable[[Exception], None],
    ) -> None:
        """Listen locally, check the pod is reachable, then relay connections until stopped.

        Readiness is only reported once a stream to the remote port has been
        opened, so transport errors (RBAC denials, missing pods, an
        unreachable API server) fail the session instead of every connection.
        """
        try:
            listener = socket.create_server((self.address, self.local_port))
        except OSError as e:
            logger.error(
                "Failed to bind local port",
                address=self.address,
                port=self.local_port,
                error=str(e),
            )
            on_failed(e)
            return

        with listener:
            listener.settimeout(self.poll_interval)
            self.bound_port = listener.getsockname()[1]
            if self.stopped:
                return

            try:
                self._check_remote()
            except (ApiException, OSError, ValueError) as e:
                logger.error(
                    "Failed to open port-forward stream",
                    remote_port=self.remote_port,
                    error=str(e),
                )
                on_failed(e)
                return

            if self.stopped:
                return

            logger.debug(
                "Forwarding",
                local=f"{self.address}:{self.bound_port}",
                remote_port=self.remote_port,
            )
            on_ready(self.address, self.bound_port)
            self._accept_loop(listener)

        logger.debug("Port-forward listener closed", port=self.bound_port, connections=self.connections)

    def _check_remote(self) -> None:
        stream = self.dialer(self.remote_port)
        try:
            # Raises ValueError if the stream did not open the requested port
            stream.socket(self.remote_port)
        finally:
            stream.close()

    def _accept_loop(self, listener: socket.socket) -> None:
        while not self.stopped:
            try:
                conn, peer = listener.accept()
            except TimeoutError:
                continue
            except OSError as e:
                if not self.stopped:
                    logger.error("Accept failed on port-forward listener", error=str(e))
                return

            self.connections += 1
            relay = threading.Thread(
                target=self._relay,
                args=(conn, peer),
                name=f"port-forward relay {peer}",
                daemon=True,
            )
            with self._lock:
                self._relays.add(relay)
            relay.start()

    def _relay(self, conn: socket.socket, peer: Any) -> None:
        try:
            with conn:
                try:
                    stream = self.dialer(self.remote_port)
                except (ApiException, OSError, ValueError) as e:
                    logger.error(
                        "Failed to open port-forward stream",
                        remote_port=self.remote_port,
                        error=str(e),
                    )
                    return

                logger.debug("Handling connection", peer=peer, remote_port=self.remote_port)
                try:
                    self._pump(conn, stream.socket(self.remote_port))
                except OSError as e:
                    logger.debug("Connection closed with error", peer=peer, error=str(e))
                finally:
                    stream.close()
                    error = stream.error(self.remote_port)
                    if error:
                        logger.warning(
                            "Port-forward stream reported an error",
                            remote_port=self.remote_port,
                            error=error,
                        )
        finally:
            with self._lock:
                self._relays.discard(threading.current_thread())

    def _pump(self, local: Any, remote: Any) -> None:
        sockets = [local, remote]
        while not self.stopped:
            readable, _, _ = select.select(sockets, [], [], self.poll_interval)
            for source in readable:
                data = source.recv(BUFFER_SIZE)
                if not data:
                    return
                target = remote if source is local else local
                target.sendall(data)
