import pytest

from broadcasts import states
from broadcasts.exceptions import InvalidState


@pytest.mark.parametrize("sent,failed,expected", [
    (117, 0, states.SENT),
    (0, 0, states.SENT),
    (70, 50, states.PARTIAL_FAILURE),
    (0, 120, states.FAILED),
])
def test_terminal_status(sent, failed, expected):
    assert states.terminal_status(sent, failed) == expected


def test_allowed_transitions():
    states.check_transition(states.DRAFT, states.SENDING)
    for final in states.TERMINAL:
        states.check_transition(states.SENDING, final)


@pytest.mark.parametrize("current,target", [
    (states.DRAFT, states.SENT),
    (states.SENDING, states.DRAFT),
    (states.SENT, states.SENDING),
    (states.FAILED, states.SENDING),
    (states.PARTIAL_FAILURE, states.SENT),
])
def test_illegal_transitions(current, target):
    with pytest.raises(InvalidState):
        states.check_transition(current, target)


def test_terminal_statuses():
    assert states.is_terminal(states.PARTIAL_FAILURE)
    assert not states.is_terminal(states.SENDING)


@pytest.mark.parametrize("total,sent,failed,expected", [
    (5, 0, 5, states.FAILED),
    (5, 3, 2, states.PARTIAL_FAILURE),
    (10, 10, 0, states.SENT),
])
def test_final_status_table(total, sent, failed, expected):
    assert sent + failed == total
    assert states.terminal_status(sent, failed) == expected
