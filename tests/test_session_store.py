"""Tests for the in-process registration session store."""

from __future__ import annotations

import pytest

from doctor_onboarding.core.exceptions import RegistrationSessionNotFoundError
from doctor_onboarding.services.registration.session_store import RegistrationSessionStore
from doctor_onboarding.state_machines.registration_flow import RegistrationFlowMachine


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_create_assigns_id_to_wizard():
    store = RegistrationSessionStore()
    wizard = RegistrationFlowMachine()

    session_id = store.create(wizard)

    assert wizard.context["id"] == session_id
    assert store.get(session_id) is wizard
    assert len(store) == 1


def test_unknown_session_raises():
    with pytest.raises(RegistrationSessionNotFoundError):
        RegistrationSessionStore().get("missing")


def test_idle_session_expires():
    clock = FakeClock()
    store = RegistrationSessionStore(ttl_seconds=60, clock=clock)
    session_id = store.create(RegistrationFlowMachine())

    clock.now += 59
    store.get(session_id)
    clock.now += 59
    assert store.get(session_id) is not None

    clock.now += 61
    with pytest.raises(RegistrationSessionNotFoundError):
        store.get(session_id)
    assert len(store) == 0


def test_purge_expired_closes_wizards(coordinator):
    clock = FakeClock()
    store = RegistrationSessionStore(ttl_seconds=10, clock=clock)
    wizard = RegistrationFlowMachine(uploads=coordinator)
    wizard.update_form_state({"full_name": "Dr. Asha Rao"})
    store.create(wizard)
    store.create(RegistrationFlowMachine())

    clock.now += 11

    assert store.purge_expired() == 2
    assert len(store) == 0
    assert wizard.form_state.full_name == ""


def test_remove_and_clear():
    store = RegistrationSessionStore()
    first = store.create(RegistrationFlowMachine())
    store.create(RegistrationFlowMachine())

    assert store.remove(first) is True
    assert store.remove(first) is False
    store.clear()
    assert len(store) == 0
