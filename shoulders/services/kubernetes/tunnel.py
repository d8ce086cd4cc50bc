"""Port-forward session supervision.

The TunnelSupervisor starts a forwarding session on its own thread and
waits for whichever comes first: the session listening, the caller's
cancellation event, or the readiness timeout. Only a ready session is
handed back; every other outcome stops the session before raising.
"""

import asyncio
import functools
import threading
from collections.abc import Callable

import structlog

from ...models.errors import (
    DialFailedError,
    TunnelCancelledError,
    TunnelTimeoutError,
)
from .client import ClusterClient
from .forwarder import Dialer, PortForwardSession
from .models import PodCandidate, ServiceDescriptor, TunnelState

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

# Listening on every interface; browse via localhost
WILDCARD_ADDRESSES = ("", "0.0.0.0", "::")

SessionFactory = Callable[..., PortForwardSession]


class TunnelHandle:
    """A live, ready port-forward.

    Stopping is idempotent: the session is signalled once no matter how
    many times, or from how many threads, ``stop`` is called.
    """

    def __init__(
        self,
        session: PortForwardSession,
        namespace: str,
        service: str,
        pod: PodCandidate,
        local_address: str,
        local_port: int,
        remote_port: int,
    ):
        self.session = session
        self.namespace = namespace
        self.service = service
        self.pod = pod
        self.local_address = local_address
        self.local_port = local_port
        self.remote_port = remote_port
        self.state = TunnelState.READY

        self._stop_lock = threading.Lock()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def url(self, path: str = "") -> str:
        """Get an HTTP URL for the local end of the tunnel."""
        host = "localhost" if self.local_address in WILDCARD_ADDRESSES else self.local_address
        return f"http://{host}:{self.local_port}{path}"

    def stop(self) -> bool:
        """Stop the session.

        Returns:
            True if this call stopped the session, False if it was already stopped.
        """
        with self._stop_lock:
            if self._stopped:
                return False
            self._stopped = True

        self.session.stop()
        logger.debug(
            "Stopped port-forward",
            namespace=self.namespace,
            service=self.service,
            local_port=self.local_port,
        )
        return True

    def join(self, timeout: float | None = None) -> None:
        """Wait for the session's I/O loop to exit."""
        self.session.join(timeout)

    def __enter__(self) -> "TunnelHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def __repr__(self) -> str:
        return (
            f"<TunnelHandle {self.local_address}:{self.local_port} -> "
            f"{self.pod.qualified_name}:{self.remote_port} ({self.state.value})>"
        )


def _settle(future: asyncio.Future, result=None, error: Exception | None = None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class TunnelSupervisor:
    """Establishes forwarding sessions with bounded readiness waits."""

    def __init__(
        self,
        cluster: ClusterClient,
        timeout: float = DEFAULT_TIMEOUT,
        address: str = "127.0.0.1",
        session_factory: SessionFactory = PortForwardSession,
    ):
        self.cluster = cluster
        self.timeout = timeout
        self.address = address
        self.session_factory = session_factory

    def build_dialer(self, pod: PodCandidate) -> Dialer:
        """Bind the pod's portforward subresource into a dialer."""
        return functools.partial(self.cluster.open_port_forward, pod.namespace, pod.name)

    async def establish(
        self,
        service: ServiceDescriptor,
        pod: PodCandidate,
        local_port: int,
        remote_port: int,
        cancel: asyncio.Event | None = None,
    ) -> TunnelHandle:
        """Start a session and wait until it is ready.

        Raises:
            DialFailedError: the session could not be created or failed before readiness.
            TunnelTimeoutError: no readiness within the timeout.
            TunnelCancelledError: the cancel event fired first.
        """
        if not 0 <= local_port <= 65535:
            raise DialFailedError(pod.name, remote_port, f"invalid local port {local_port}")
        if not 0 < remote_port <= 65535:
            raise DialFailedError(pod.name, remote_port, f"invalid remote port {remote_port}")

        session = self.session_factory(
            self.build_dialer(pod),
            local_port,
            remote_port,
            address=self.address,
        )

        loop = asyncio.get_running_loop()
        outcome: asyncio.Future = loop.create_future()

        def on_ready(address: str, port: int) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_settle, outcome, (address, port))

        def on_failed(error: Exception) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(functools.partial(_settle, outcome, error=error))

        log = logger.bind(
            namespace=service.namespace,
            service=service.name,
            pod=pod.name,
            local_port=local_port,
            remote_port=remote_port,
        )
        log.debug("Starting port-forward", state=TunnelState.STARTING.value)
        session.start(on_ready, on_failed)

        waiters: set[asyncio.Future] = {outcome}
        cancel_waiter = None
        if cancel is not None:
            cancel_waiter = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            session.stop()
            outcome.cancel()
            log.info("Port-forward cancelled", state=TunnelState.CANCELLED.value)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if cancel_waiter is not None and cancel_waiter in done:
            session.stop()
            outcome.cancel()
            log.info("Port-forward cancelled", state=TunnelState.CANCELLED.value)
            raise TunnelCancelledError(service.namespace, service.name)

        if outcome not in done:
            session.stop()
            outcome.cancel()
            log.warning("Port-forward timed out", state=TunnelState.TIMED_OUT.value, timeout=self.timeout)
            raise TunnelTimeoutError(service.namespace, service.name, self.timeout)

        error = outcome.exception()
        if error is not None:
            session.stop()
            log.error("Port-forward failed", state=TunnelState.FAILED.value, error=str(error))
            raise DialFailedError(pod.name, remote_port, str(error)) from error

        local_address, bound_port = outcome.result()
        log.info("Port-forward ready", state=TunnelState.READY.value, bound_port=bound_port)
        return TunnelHandle(
            session=session,
            namespace=service.namespace,
            service=service.name,
            pod=pod,
            local_address=local_address,
            local_port=bound_port,
            remote_port=remote_port,
        )
