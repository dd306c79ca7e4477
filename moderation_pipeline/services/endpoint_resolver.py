"""
Weighted service discovery for inference backends.

Backends are located through DNS SRV records. The lowest priority group
wins and a backend inside it is picked at random in proportion to its
weight. The chosen backend is cached per domain, so every caller inside the
TTL window talks to the same backend.
"""

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import dns.exception
import dns.resolver

from moderation_pipeline.core.exceptions import DiscoveryError
from moderation_pipeline.core.logger import logger

CACHE_TTL = 300  # seconds


@dataclass(frozen=True)
class InferenceBackend:
    host: str
    port: int
    priority: int
    weight: int

    def base_url(self, scheme: str = "https") -> str:
        return f"{scheme}://{self.host}:{self.port}"


SrvLookup = Callable[[str], List[InferenceBackend]]


def dns_srv_lookup(domain: str) -> List[InferenceBackend]:
    """
    Query SRV records for ``domain``.

    Raises:
        DiscoveryError: If the DNS query fails
    """
    try:
        answer = dns.resolver.resolve(domain, "SRV")
    except dns.exception.DNSException as e:
        raise DiscoveryError(
            f"SRV lookup failed for {domain}: {str(e)}",
            domain=domain,
            details={"error": str(e)},
        )

    return [
        InferenceBackend(
            host=record.target.to_text(omit_final_dot=True),
            port=record.port,
            priority=record.priority,
            weight=record.weight,
        )
        for record in answer
    ]


def select_backend(candidates: List[InferenceBackend], rng: random.Random) -> InferenceBackend:
    """
    Pick a backend from the lowest priority group, weighted by SRV weight.

    When every weight in the group is zero the first candidate of the group
    is returned; the same fallback applies if the walk ends without a pick.
    """
    lowest = min(c.priority for c in candidates)
    group = [c for c in candidates if c.priority == lowest]

    total_weight = sum(c.weight for c in group)
    if total_weight <= 0:
        return group[0]

    remaining = rng.randrange(total_weight)
    for candidate in group:
        remaining -= candidate.weight
        if remaining < 0:
            return candidate

    return group[0]


class InferenceEndpointResolver:
    """Resolves and caches one sticky backend per SRV domain."""

    def __init__(
        self,
        lookup: SrvLookup = dns_srv_lookup,
        ttl: float = CACHE_TTL,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.lookup = lookup
        self.ttl = ttl
        self.rng = rng or random.Random()
        self.clock = clock
        self._cache: Dict[str, Tuple[InferenceBackend, float]] = {}
        self._lock = threading.Lock()

    def resolve(self, domain: str) -> InferenceBackend:
        """
        Return the backend to use for ``domain``.

        Raises:
            DiscoveryError: If the lookup fails or returns no candidates
        """
        now = self.clock()
        with self._lock:
            cached = self._cache.get(domain)
            if cached and cached[1] > now:
                return cached[0]

        # Concurrent misses may both query DNS; the last writer wins.
        candidates = self.lookup(domain)
        if not candidates:
            raise DiscoveryError(f"No SRV candidates for {domain}", domain=domain)

        with self._lock:
            backend = select_backend(candidates, self.rng)
            self._cache[domain] = (backend, now + self.ttl)

        logger.info(
            f"Resolved inference backend {backend.host}:{backend.port}",
            extra={
                "backend": f"{backend.host}:{backend.port}",
                "domain": domain,
                "candidates": len(candidates)
            }
        )
        return backend

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
