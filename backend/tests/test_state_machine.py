import pytest

from backend.app.core.state_machine import CookAlongSession, InvalidTransition
from backend.app.models.session import SessionStatus

from fakes import make_recipe


def three_step_session() -> CookAlongSession:
    return CookAlongSession(make_recipe("Chop the onion", "Fry it", "Serve"))


def test_three_step_walkthrough():
    s = three_step_session()
    assert s.status == SessionStatus.NOT_STARTED
    assert s.progress == 0.0
    assert s.current_step is None

    s.start_first_step()
    assert s.status == SessionStatus.ACTIVE
    assert s.current_step_index == 0
    assert s.progress == pytest.approx(1 / 3)

    s.next_step()
    s.next_step()
    assert s.current_step_index == 2
    assert s.progress == 1.0
    assert not s.has_next_step
    assert s.has_previous_step

    s.complete_session()
    assert s.status == SessionStatus.COMPLETED
    with pytest.raises(InvalidTransition):
        s.next_step()
    assert s.current_step_index == 2


def test_next_step_at_last_step_is_rejected():
    s = CookAlongSession(make_recipe("Only step"))
    s.start_first_step()
    with pytest.raises(InvalidTransition):
        s.next_step()
    assert s.current_step_index == 0


def test_navigation_before_start_is_rejected():
    s = three_step_session()
    for op in (s.next_step, s.previous_step, s.repeat_step, s.pause_session, s.resume_session, s.complete_session):
        with pytest.raises(InvalidTransition):
            op()
    assert s.status == SessionStatus.NOT_STARTED


def test_start_twice_is_rejected():
    s = three_step_session()
    s.start_first_step()
    with pytest.raises(InvalidTransition):
        s.start_first_step()


def test_empty_recipe_cannot_start():
    s = CookAlongSession(make_recipe())
    with pytest.raises(InvalidTransition):
        s.start_first_step()
    assert s.progress == 0.0


def test_previous_step_is_noop_at_first_step():
    s = three_step_session()
    s.start_first_step()
    assert s.previous_step().number == 1
    assert s.current_step_index == 0
    s.next_step()
    s.previous_step()
    assert s.current_step_index == 0


def test_repeat_keeps_index():
    s = three_step_session()
    s.start_first_step()
    s.next_step()
    assert s.repeat_step().step == "Fry it"
    assert s.current_step_index == 1


def test_pause_resume_keeps_index():
    s = three_step_session()
    s.start_first_step()
    s.next_step()
    s.pause_session()
    assert s.status == SessionStatus.PAUSED
    with pytest.raises(InvalidTransition):
        s.next_step()
    with pytest.raises(InvalidTransition):
        s.pause_session()
    s.resume_session()
    assert s.status == SessionStatus.ACTIVE
    assert s.current_step_index == 1


def test_progress_is_monotonic_while_advancing():
    s = CookAlongSession(make_recipe(*[f"step {i}" for i in range(7)]))
    s.start_first_step()
    seen = [s.progress]
    while s.has_next_step:
        s.next_step()
        seen.append(s.progress)
        assert 0 <= s.current_step_index < s.total_steps
    assert seen == sorted(seen)
    assert seen[-1] == 1.0


def test_jump_to_step_bounds():
    s = three_step_session()
    s.start_first_step()
    s.jump_to_step(2)
    assert s.current_step.step == "Serve"
    with pytest.raises(InvalidTransition):
        s.jump_to_step(3)
    assert s.current_step_index == 2


def test_completion_listener_fires_once():
    s = three_step_session()
    fired = []
    s.on_complete(fired.append)
    s.start_first_step()
    s.complete_session()
    with pytest.raises(InvalidTransition):
        s.complete_session()
    assert fired == [s]


def test_ingredient_checklist():
    s = three_step_session()
    s.check_ingredient("onion")
    s.check_ingredient("onion")
    s.check_ingredient("oil")
    assert s.checked_ingredients == ["onion", "oil"]
    s.uncheck_ingredient("onion")
    assert not s.is_ingredient_checked("onion")
    assert s.is_ingredient_checked("oil")
