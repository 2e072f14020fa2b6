import pytest

from shuttle import FrequencyExceeded, FrequencyGuard


def test_allows_calls_up_to_the_maximum(clock) -> None:
    guard = FrequencyGuard(maximum=3, clock=clock)

    assert [guard.check("/users") for _ in range(3)] == [1, 2, 3]


def test_rejects_calls_over_the_maximum(clock) -> None:
    guard = FrequencyGuard(maximum=3, clock=clock)
    for _ in range(3):
        guard.check("/users")

    with pytest.raises(FrequencyExceeded) as exc_info:
        guard.check("/users")

    assert exc_info.value.path == "/users"
    assert exc_info.value.count == 4
    assert "request_limit" in str(exc_info.value)


def test_rejected_calls_are_counted(clock) -> None:
    guard = FrequencyGuard(maximum=1, clock=clock)
    guard.check("/users")

    for expected in (2, 3):
        with pytest.raises(FrequencyExceeded) as exc_info:
            guard.check("/users")
        assert exc_info.value.count == expected


def test_window_resets(clock) -> None:
    guard = FrequencyGuard(maximum=2, range=1000, clock=clock)
    guard.check("/users")
    guard.check("/users")

    clock.advance(999)
    with pytest.raises(FrequencyExceeded):
        guard.check("/users")

    clock.advance(1)
    assert guard.check("/users") == 1


def test_paths_are_counted_separately(clock) -> None:
    guard = FrequencyGuard(maximum=1, clock=clock)

    assert guard.check("/users") == 1
    assert guard.check("/groups") == 1


def test_expired_windows_are_pruned(clock) -> None:
    guard = FrequencyGuard(maximum=5, clock=clock)
    guard.check("/users")
    guard.check("/groups")
    assert len(guard) == 2

    clock.advance(1000)
    guard.check("/orders")

    assert len(guard) == 1


@pytest.mark.parametrize("maximum", [0, -1])
def test_disabled_guard(clock, maximum: int) -> None:
    guard = FrequencyGuard(maximum=maximum, clock=clock)

    assert not guard.enabled
    for _ in range(100):
        assert guard.check("/users") == 0
    assert len(guard) == 0
