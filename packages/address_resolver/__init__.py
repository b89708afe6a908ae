"""
Gateway Address Resolver.

Turns the configured gateway host into a concrete IP address. Hostnames are
resolved on every call so a reconnect can follow DNS changes, and when a name
has several A records one of them is picked at random.
"""

import asyncio
import ipaddress
import random
import socket
from typing import Awaitable, Callable, Iterable, Optional

import structlog


logger = structlog.get_logger(__name__)

Lookup = Callable[[str], Awaitable[Iterable[str]]]


class ResolutionError(Exception):
    """Raised when a gateway host cannot be resolved to an address."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Unable to resolve host {host}: {reason}")


def is_ip_address(host: str) -> bool:
    """Check if host is already a literal IPv4/IPv6 address."""
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


async def lookup_a_records(host: str) -> list[str]:
    """
    Look up the IPv4 addresses of a host.

    Uses the running loop's resolver so the lookup can be cancelled.

    Args:
        host: Hostname to look up

    Returns:
        Addresses in the order the resolver returned them (may repeat)
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(
        host, None, family=socket.AF_INET, type=socket.SOCK_STREAM
    )
    return [info[4][0] for info in infos]


class AddressResolver:
    """
    Resolves gateway hosts to addresses.

    Nothing is cached between calls.
    """

    def __init__(
        self,
        lookup: Optional[Lookup] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize resolver.

        Args:
            lookup: Coroutine returning the A records of a host (uses DNS if None)
            rng: Random source used to pick among several records
        """
        self.lookup = lookup or lookup_a_records
        self.rng = rng or random.Random()

    async def resolve(self, host: str) -> str:
        """
        Resolve host to a single address.

        Args:
            host: Literal IP address or hostname

        Returns:
            The address to connect to

        Raises:
            ResolutionError: If the lookup fails or returns no records
        """
        if is_ip_address(host):
            return host

        try:
            records = await self.lookup(host)
        except (OSError, UnicodeError) as e:
            # UnicodeError: malformed name rejected by the idna codec
            logger.warning("host_lookup_failed", host=host, error=str(e))
            raise ResolutionError(host, str(e) or type(e).__name__) from e

        # Keep resolver order so a seeded rng picks deterministically
        addresses = list(dict.fromkeys(
            record for record in records if record and is_ip_address(record)
        ))
        if not addresses:
            raise ResolutionError(host, "no address records found")

        address = self.rng.choice(addresses)
        logger.debug("host_resolved", host=host, address=address, candidates=len(addresses))
        return address


__all__ = ["AddressResolver", "ResolutionError", "is_ip_address", "lookup_a_records"]
