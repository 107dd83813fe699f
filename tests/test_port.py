import socket

import pytest

from canopus.errors import NoAvailablePort, PortInUse
from canopus.port import (
    DEFAULT_PORT_RANGE_END,
    DEFAULT_PORT_RANGE_START,
    PortAllocator,
    clear_reservations,
    release_port,
    reservations,
)


@pytest.fixture(autouse=True)
def _clean_table():
    clear_reservations()
    yield
    clear_reservations()


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("0.0.0.0", 0))
        return sock.getsockname()[1]


def test_allocator_creation():
    allocator = PortAllocator()
    assert allocator.range_start == DEFAULT_PORT_RANGE_START
    assert allocator.range_end == DEFAULT_PORT_RANGE_END
    assert (DEFAULT_PORT_RANGE_START, DEFAULT_PORT_RANGE_END) == (30_000, 60_000)

    custom = PortAllocator(8000, 9000)
    assert custom.range_start == 8000
    assert custom.range_end == 9000


def test_preferred_port_success():
    preferred = _free_port()
    with PortAllocator().reserve(preferred) as guard:
        assert guard.port == preferred
        assert preferred in reservations()


def test_reservation_meta_records_process():
    import os

    preferred = _free_port()
    with PortAllocator().reserve(preferred):
        meta = reservations()[preferred]
        assert meta.pid == os.getpid()
        assert meta.timestamp > 0


def test_port_collision():
    allocator = PortAllocator()
    preferred = _free_port()
    with allocator.reserve(preferred) as first:
        assert first.port == preferred
        assert preferred in reservations()

        with pytest.raises(PortInUse) as excinfo:
            allocator.try_reserve_port(preferred)
        assert excinfo.value.port == preferred

        with allocator.reserve(preferred) as second:
            assert second.port != preferred
            assert allocator.range_start <= second.port < allocator.range_end


def test_port_in_use_by_os():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as other:
        other.bind(("0.0.0.0", 0))
        other.listen()
        busy = other.getsockname()[1]
        with pytest.raises(PortInUse) as excinfo:
            PortAllocator().try_reserve_port(busy)
        assert excinfo.value.port == busy
        assert busy not in reservations()


def test_release_on_exit():
    preferred = _free_port()
    with PortAllocator().reserve(preferred) as guard:
        assert guard.port in reservations()
    assert preferred not in reservations()


def test_deterministic_sequence():
    allocator = PortAllocator(45000, 45010)
    seq1 = list(allocator.port_sequence())
    seq2 = list(allocator.port_sequence())
    assert seq1 == seq2
    assert sorted(seq1) == list(range(45000, 45010))


def test_sequence_covers_range_once():
    allocator = PortAllocator(40000, 40100)
    seq = list(allocator.port_sequence())
    assert len(seq) == len(set(seq)) == 100
    assert all(40000 <= port < 40100 for port in seq)


def test_sequence_is_contiguous_rotation():
    allocator = PortAllocator(45000, 45010)
    seq = list(allocator.port_sequence())
    for current, following in zip(seq, seq[1:]):
        assert following == current + 1 or (current == 45009 and following == 45000)


def test_fallback_to_sequence():
    allocator = PortAllocator(40000, 41000)
    with allocator.reserve(None) as guard:
        assert 40000 <= guard.port < 41000
        assert guard.port in reservations()


def test_empty_range_reports_no_available_port():
    with pytest.raises(NoAvailablePort) as excinfo:
        PortAllocator(45000, 45000).reserve(None)
    assert excinfo.value.tried == 0


def test_busy_preferred_with_empty_range_counts_attempt():
    allocator = PortAllocator(45000, 45000)
    preferred = _free_port()
    with allocator.try_reserve_port(preferred):
        with pytest.raises(NoAvailablePort) as excinfo:
            allocator.reserve(preferred)
        assert excinfo.value.tried == 1
        assert "after trying 1 ports" in str(excinfo.value)


def test_explicit_release():
    preferred = _free_port()
    guard = PortAllocator().reserve(preferred)
    assert preferred in reservations()

    release_port(preferred)
    assert preferred not in reservations()

    guard.release()
    guard.release()
    assert preferred not in reservations()


def test_released_port_can_be_reserved_again():
    allocator = PortAllocator()
    preferred = _free_port()
    with allocator.reserve(preferred) as first:
        assert first.port == preferred
    with allocator.reserve(preferred) as second:
        assert second.port == preferred


def test_get_addr():
    preferred = _free_port()
    with PortAllocator().reserve(preferred) as guard:
        host, port = guard.addr()
        assert port == preferred
        assert host == "0.0.0.0"


def test_clear_reservations():
    preferred = _free_port()
    with PortAllocator().reserve(preferred):
        assert preferred in reservations()
        clear_reservations()
        assert reservations() == {}