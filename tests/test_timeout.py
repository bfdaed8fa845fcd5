"""Tests for timeout priority resolution and timeout errors."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pyrecorder.core import Step, TimeoutOrder, get_current_timeout, resolve_timeout
from pyrecorder.core.timeout import StepTimeoutError, TaskTimeoutError, TestTimeoutError
from pyrecorder.errors import RecorderError

SUITE = TimeoutOrder.TEST_OR_SUITE
HARD = TimeoutOrder.STEP_TIMEOUT_HARD
CODE = TimeoutOrder.CODE_LIMIT_TIME
SOFT = TimeoutOrder.STEP_TIMEOUT_SOFT


@pytest.mark.parametrize(
    "entries,expected",
    [
        ({}, None),
        ({CODE: 1000}, 1000),
        ({SUITE: 10000, CODE: 5000}, 5000),
        ({SUITE: 3000, CODE: 5000}, 3000),
        ({SUITE: 3000, CODE: 0}, 3000),
        ({SUITE: 0}, 0),
        ({SOFT: 2000, HARD: 4000}, 4000),
        ({SOFT: 2000, CODE: 4000, HARD: 1000}, 1000),
        ({SUITE: None, CODE: 1000}, 1000),
        ({SUITE: None}, None),
        ({SOFT: 0, CODE: 7000}, 7000),
    ],
)
def test_resolve_timeout_table(entries, expected):
    assert resolve_timeout(entries) == expected


def test_resolve_timeout_accepts_pairs():
    assert resolve_timeout([(CODE, 1000), (SUITE, 500)]) == 500
    assert resolve_timeout(iter([(SOFT, 1000)])) == 1000


@pytest.mark.parametrize(
    "entries",
    [
        [(SUITE, 0), (SUITE, 3000)],
        [(SUITE, 3000), (SUITE, 0)],
    ],
)
def test_zero_ambient_timeout_never_hides_a_real_one(entries):
    """A zero "no timeout" sentinel at the same order does not win over a budget."""
    assert resolve_timeout(entries) == 3000


def test_equal_orders_keep_declaration_order():
    # later non-negative declarations at the same order win
    assert resolve_timeout([(CODE, 1000), (CODE, 2000)]) == 2000
    assert resolve_timeout([(CODE, 2000), (CODE, 1000)]) == 1000


def test_get_current_timeout_is_resolver():
    assert get_current_timeout is resolve_timeout


def test_step_timeout_property_uses_resolver():
    step = Step.plain("click")
    assert step.timeout is None

    step.set_timeout(10000, SUITE)
    step.set_timeout(2000, CODE)
    assert step.timeout == 2000

    step.set_timeout(0, CODE)
    assert step.timeout == 10000


def test_timeout_error_taxonomy():
    step = Step.helper_call(None, "click")
    step.set_arguments(["#submit"])

    test_error = TestTimeoutError(5)
    step_error = StepTimeoutError(2, step)

    assert str(test_error) == "Timeout 5s exceeded (with Before hook)"
    assert str(step_error) == 'Step I.click("#submit") timed out after 2s'
    assert step_error.step is step

    for error in (test_error, step_error):
        assert isinstance(error, TaskTimeoutError)
        assert isinstance(error, TimeoutError)
        assert isinstance(error, RecorderError)


# ==============================================================================
# PROPERTIES
# ==============================================================================

orders = st.sampled_from([order.value for order in TimeoutOrder])
durations = st.one_of(st.none(), st.just(0), st.integers(min_value=1, max_value=120_000))
entry_lists = st.lists(st.tuples(orders, durations), max_size=8)


@pytest.mark.property
@given(entries=entry_lists)
def test_resolved_timeout_is_one_of_the_declared_values(entries):
    """Property: the resolver picks a declared duration, never invents one."""
    resolved = resolve_timeout(entries)
    declared = [duration for _, duration in entries if duration is not None]
    if not declared:
        assert resolved is None
    else:
        assert resolved in declared


@pytest.mark.property
@given(entries=entry_lists)
def test_explicit_override_beats_ambient_budget(entries):
    """Property: the lowest non-negative order with a value decides when present."""
    explicit = [
        (order, duration) for order, duration in entries if order >= 0 and duration is not None
    ]
    ambient = [(order, duration) for order, duration in entries if order < 0]
    resolved = resolve_timeout(entries)

    if explicit and not any(duration for _, duration in ambient):
        lowest = min(order for order, _ in explicit)
        winners = [duration for order, duration in explicit if order == lowest]
        assert resolved == winners[-1]


@pytest.mark.property
@given(entries=entry_lists)
def test_ambient_budget_only_tightens(entries):
    """Property: adding an ambient budget never makes the timeout longer."""
    base = resolve_timeout(entries)
    tightened = resolve_timeout([*entries, (SUITE.value, 1)])
    if base:
        assert tightened <= base
    else:
        assert tightened == 1
