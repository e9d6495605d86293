from datetime import time

import pytest

from clinic_scheduler.services.scheduling import Slot, generate_slots


def test_generate_slots_covers_window_in_fixed_increments() -> None:
    slots = list(generate_slots(time(9, 0), time(10, 0), 30))

    assert slots == [Slot(time(9, 0), time(9, 30)), Slot(time(9, 30), time(10, 0))]


def test_generate_slots_drops_trailing_remainder() -> None:
    slots = list(generate_slots(time(9, 0), time(9, 45), 30))

    assert slots == [Slot(time(9, 0), time(9, 30))]


def test_generate_slots_is_deterministic_and_restartable() -> None:
    grid = generate_slots(time(8, 0), time(12, 0), 20)

    first = list(grid)
    second = list(grid)

    assert first == second
    assert first == list(generate_slots(time(8, 0), time(12, 0), 20))
    assert len(first) == len(grid) == 12
    assert first == sorted(first)


def test_generate_slots_are_contiguous_and_non_overlapping() -> None:
    slots = list(generate_slots(time(9, 0), time(17, 0), 45))

    for previous, current in zip(slots, slots[1:]):
        assert previous.end == current.start


@pytest.mark.parametrize(
    ('start', 'end'),
    [
        (time(10, 0), time(10, 0)),
        (time(11, 0), time(10, 0)),
        (time(9, 0), time(9, 20)),
    ],
)
def test_generate_slots_empty_window_is_not_an_error(start: time, end: time) -> None:
    grid = generate_slots(start, end, 30)

    assert list(grid) == []
    assert len(grid) == 0


def test_generate_slots_uses_configured_duration_by_default() -> None:
    slots = list(generate_slots(time(9, 0), time(10, 0)))

    assert slots[0] == Slot(time(9, 0), time(9, 30))


def test_generate_slots_rejects_non_positive_duration() -> None:
    with pytest.raises(ValueError):
        generate_slots(time(9, 0), time(10, 0), 0)


def test_slot_grid_membership() -> None:
    grid = generate_slots(time(9, 0), time(10, 0), 30)

    assert Slot(time(9, 30), time(10, 0)) in grid
    assert Slot(time(9, 15), time(9, 45)) not in grid
    assert Slot(time(9, 0), time(10, 0)) not in grid
    assert Slot(time(10, 0), time(10, 30)) not in grid
    assert Slot(time(8, 30), time(9, 0)) not in grid


def test_slot_label() -> None:
    assert Slot(time(9, 0), time(9, 30)).label() == '09:00-09:30'
