"""
Tests for gateway address resolution.
"""

import asyncio
import random
import socket
from unittest.mock import AsyncMock, patch

import pytest

from packages.address_resolver import (
    AddressResolver,
    ResolutionError,
    is_ip_address,
    lookup_a_records,
)


def test_is_ip_address():
    """Test literal address detection."""
    assert is_ip_address("127.0.0.1")
    assert is_ip_address("::1")
    assert not is_ip_address("gateway.example")
    assert not is_ip_address("127.0.0")


@pytest.mark.asyncio
async def test_literal_ipv4_skips_lookup():
    """Test a literal address is returned without a lookup."""
    lookup = AsyncMock()
    resolver = AddressResolver(lookup=lookup)

    assert await resolver.resolve("127.0.0.1") == "127.0.0.1"
    lookup.assert_not_awaited()


@pytest.mark.asyncio
async def test_literal_ipv6_skips_lookup():
    """Test IPv6 literals are returned unchanged too."""
    lookup = AsyncMock()
    resolver = AddressResolver(lookup=lookup)

    assert await resolver.resolve("fe80::1") == "fe80::1"
    lookup.assert_not_awaited()


@pytest.mark.asyncio
async def test_hostname_picks_among_records():
    """Test a hostname with three records resolves to one of them."""
    records = ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
    lookup = AsyncMock(return_value=records)
    resolver = AddressResolver(lookup=lookup, rng=random.Random(7))

    chosen = {await resolver.resolve("gateway.example") for _ in range(60)}

    assert chosen <= set(records)
    assert len(chosen) > 1
    lookup.assert_awaited_with("gateway.example")


@pytest.mark.asyncio
async def test_every_resolve_looks_up_again():
    """Test nothing is cached between calls."""
    lookup = AsyncMock(side_effect=[["10.0.0.1"], ["10.0.0.9"]])
    resolver = AddressResolver(lookup=lookup)

    assert await resolver.resolve("gateway.example") == "10.0.0.1"
    assert await resolver.resolve("gateway.example") == "10.0.0.9"
    assert lookup.await_count == 2


@pytest.mark.asyncio
async def test_duplicate_records_collapsed():
    """Test repeated answers do not skew the choice."""
    lookup = AsyncMock(return_value=["10.0.0.1", "10.0.0.1", "10.0.0.1"])
    resolver = AddressResolver(lookup=lookup)

    assert await resolver.resolve("gateway.example") == "10.0.0.1"


@pytest.mark.asyncio
async def test_no_records_raises():
    """Test an empty answer is a resolution error."""
    resolver = AddressResolver(lookup=AsyncMock(return_value=[]))

    with pytest.raises(ResolutionError, match="no address records") as exc_info:
        await resolver.resolve("gateway.example")

    assert exc_info.value.host == "gateway.example"


@pytest.mark.asyncio
async def test_lookup_failure_raises():
    """Test DNS errors are wrapped in ResolutionError."""
    lookup = AsyncMock(side_effect=socket.gaierror(-2, "Name or service not known"))
    resolver = AddressResolver(lookup=lookup)

    with pytest.raises(ResolutionError, match="Name or service not known") as exc_info:
        await resolver.resolve("missing.example")

    assert isinstance(exc_info.value.__cause__, socket.gaierror)


@pytest.mark.asyncio
async def test_malformed_hostname_raises():
    """Test a name the idna codec rejects is a resolution error."""
    with pytest.raises(ResolutionError) as exc_info:
        await AddressResolver().resolve("gw..example.com")

    assert exc_info.value.host == "gw..example.com"
    assert isinstance(exc_info.value.__cause__, UnicodeError)


@pytest.mark.asyncio
async def test_lookup_encoding_error_raises():
    """Test encoding errors from the lookup are wrapped in ResolutionError."""
    lookup = AsyncMock(side_effect=UnicodeError("label empty or too long"))
    resolver = AddressResolver(lookup=lookup)

    with pytest.raises(ResolutionError, match="label empty or too long"):
        await resolver.resolve("gw..example.com")


@pytest.mark.asyncio
async def test_lookup_timeout_raises():
    """Test a timed out lookup is a resolution error."""
    resolver = AddressResolver(lookup=AsyncMock(side_effect=TimeoutError()))

    with pytest.raises(ResolutionError, match="TimeoutError"):
        await resolver.resolve("slow.example")


@pytest.mark.asyncio
async def test_cancellation_is_not_resolution_error():
    """Test cancelling during lookup propagates as cancellation."""
    started = asyncio.Event()

    async def hanging_lookup(host):
        started.set()
        await asyncio.Event().wait()

    resolver = AddressResolver(lookup=hanging_lookup)
    task = asyncio.create_task(resolver.resolve("gateway.example"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_lookup_a_records_uses_ipv4_getaddrinfo():
    """Test the default lookup asks the loop for IPv4 stream addresses."""
    loop = asyncio.get_running_loop()
    infos = [
        (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.5", 0)),
        (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.6", 0)),
    ]

    with patch.object(loop, "getaddrinfo", AsyncMock(return_value=infos)) as mock_getaddrinfo:
        addresses = await lookup_a_records("gateway.example")

    assert addresses == ["10.0.0.5", "10.0.0.6"]
    mock_getaddrinfo.assert_awaited_once_with(
        "gateway.example", None, family=socket.AF_INET, type=socket.SOCK_STREAM
    )
