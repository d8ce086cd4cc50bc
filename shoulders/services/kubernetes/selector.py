"""Backing pod discovery for services.

Lists the pods matched by a service's label selector and picks one with a
pluggable selection strategy.
"""

import asyncio
import random
from collections.abc import Callable, Sequence

import structlog

from ...models.errors import PodNotFoundError, SelectorRejectedError
from .client import ClusterClient
from .models import PodCandidate, ServiceDescriptor, format_selector

logger = structlog.get_logger(__name__)

# Picks one pod from a non-empty candidate list
SelectionStrategy = Callable[[Sequence[PodCandidate]], PodCandidate]


def prefer_running(candidates: Sequence[PodCandidate]) -> PodCandidate:
    """Pick the first Running pod, else the first candidate.

    Falling back to a non-running pod surfaces a connection error from the
    pod itself instead of an opaque "no pod" failure. Listing order is not
    guaranteed, so callers may only rely on getting some Running pod.
    """
    for candidate in candidates:
        if candidate.is_running:
            return candidate
    return candidates[0]


def random_running(candidates: Sequence[PodCandidate]) -> PodCandidate:
    """Pick a random Running pod, else the first candidate."""
    running = [candidate for candidate in candidates if candidate.is_running]
    if running:
        return random.choice(running)
    return candidates[0]


class PodSelector:
    """Resolves a service to one backing pod."""

    def __init__(self, cluster: ClusterClient, strategy: SelectionStrategy = prefer_running):
        self.cluster = cluster
        self.strategy = strategy

    async def select(self, service: ServiceDescriptor) -> PodCandidate:
        """Select a pod backing the service.

        Raises:
            SelectorRejectedError: the service has no selector; no query is issued.
            PodNotFoundError: nothing matches the selector.
        """
        if not service.selector:
            raise SelectorRejectedError(service.namespace, service.name)

        label_selector = format_selector(service.selector)
        loop = asyncio.get_running_loop()
        candidates = await loop.run_in_executor(
            None,
            self.cluster.list_pods,
            service.namespace,
            label_selector,
        )
        if not candidates:
            raise PodNotFoundError(service.namespace, label_selector)

        pod = self.strategy(candidates)
        logger.debug(
            "Selected backing pod",
            service=service.name,
            pod=pod.qualified_name,
            phase=pod.phase.value,
            candidates=len(candidates),
        )
        if not pod.is_running:
            logger.warning(
                "No running pod matches selector, using fallback",
                selector=label_selector,
                pod=pod.qualified_name,
                phase=pod.phase.value,
            )
        return pod
