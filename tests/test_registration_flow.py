"""Tests for the registration wizard state machine.

Covers:
  - Step bounds: floor, ceiling, gated forward moves
  - Prefill mode skipping the account step
  - Form updates invalidating the current step's errors
  - Upload URL bookkeeping: stale and post-close results dropped, close()
  - Registry lookup
"""

from __future__ import annotations

import pytest

from conftest import account_data, complete_form_state, jpeg, pdf
from doctor_onboarding.core.exceptions import SubmissionNotAllowedError, UnknownFormFieldError
from doctor_onboarding.domain.schemas import FormState, PrefillData
from doctor_onboarding.state_machines import FLOW_REGISTRY, get_flow_machine
from doctor_onboarding.state_machines.registration_flow import RegistrationFlowMachine


# ======================================================================
# Navigation
# ======================================================================


def test_starts_on_account_step_without_prefill():
    wizard = RegistrationFlowMachine()

    assert wizard.current_step == 1
    assert wizard.floor == 1
    assert not wizard.is_prefill_mode
    assert wizard.state_id == "account"


def test_next_blocked_by_violations():
    wizard = RegistrationFlowMachine()

    assert wizard.next() is False
    assert wizard.current_step == 1
    assert "Full name is required" in wizard.errors_for_step(1)


def test_next_advances_when_step_is_clean():
    wizard = RegistrationFlowMachine()
    wizard.update_form_state(account_data())

    assert wizard.next() is True
    assert wizard.current_step == 2
    assert wizard.errors_for_step(1) == []


def test_walks_to_final_step_and_stays_there():
    wizard = RegistrationFlowMachine(form_state=complete_form_state())
    for expected in (2, 3, 4, 5):
        assert wizard.next() is True
        assert wizard.current_step == expected

    assert wizard.is_final_step
    assert wizard.next() is True
    assert wizard.current_step == 5


def test_back_never_goes_below_first_step():
    wizard = RegistrationFlowMachine(form_state=complete_form_state())
    wizard.next()
    wizard.next()

    assert wizard.back() == 2
    assert wizard.back() == 1
    assert wizard.back() == 1


def test_back_does_not_validate():
    wizard = RegistrationFlowMachine(form_state=complete_form_state())
    wizard.next()
    wizard.update_form_state({"pan_card": None})

    assert wizard.back() == 1


# ======================================================================
# Prefill mode
# ======================================================================


def test_prefill_starts_on_verification_step():
    prefill = PrefillData(full_name="Dr. Asha Rao", email="asha.rao@example.com", mobile_number="9876543210")
    wizard = RegistrationFlowMachine(prefill=prefill)

    assert wizard.is_prefill_mode
    assert wizard.current_step == 2
    assert wizard.floor == 2
    assert wizard.form_state.full_name == "Dr. Asha Rao"
    assert wizard.form_state.email == "asha.rao@example.com"


def test_prefill_back_stays_on_verification_step():
    wizard = RegistrationFlowMachine(prefill=PrefillData(email="asha.rao@example.com"))

    assert wizard.back() == 2
    assert wizard.current_step == 2
    assert "retreat" not in wizard.allowed_event_ids()


def test_prefill_back_from_later_step_stops_at_floor():
    wizard = RegistrationFlowMachine(
        prefill=PrefillData(email="asha.rao@example.com"),
        form_state=complete_form_state(),
    )
    wizard.next()
    assert wizard.current_step == 3

    assert wizard.back() == 2
    assert wizard.back() == 2


def test_user_id_alone_does_not_enable_prefill():
    wizard = RegistrationFlowMachine(user_id="user-1")

    assert wizard.current_step == 1
    assert not wizard.is_prefill_mode


# ======================================================================
# Form updates
# ======================================================================


def test_update_clears_current_step_errors_even_without_change():
    wizard = RegistrationFlowMachine()
    wizard.next()
    assert wizard.errors_for_step(1)

    wizard.update_form_state({"full_name": ""})
    assert wizard.errors_for_step(1) == []


def test_update_accepts_camel_case_keys():
    wizard = RegistrationFlowMachine()
    state = wizard.update_form_state({"fullName": "Dr. Asha Rao", "mobileNumber": "9876543210"})

    assert state.full_name == "Dr. Asha Rao"
    assert wizard.form_state.mobile_number == "9876543210"


def test_update_replaces_snapshot():
    wizard = RegistrationFlowMachine()
    before = wizard.form_state
    wizard.update_form_state({"full_name": "Dr. Asha Rao"})

    assert before.full_name == ""
    assert wizard.form_state is not before


def test_unknown_field_rejected():
    wizard = RegistrationFlowMachine()
    with pytest.raises(UnknownFormFieldError) as exc_info:
        wizard.update_form_state({"favourite_colour": "blue"})

    assert exc_info.value.fields == ["favourite_colour"]


def test_record_uploaded_url_pads_degree_certificates():
    wizard = RegistrationFlowMachine(
        form_state=FormState().merged({"degree_certificates": (pdf("a.pdf"), pdf("b.pdf"))})
    )
    wizard.record_uploaded_url("degree_certificates", "https://storage.test/b.pdf", index=1)

    assert wizard.form_state.degree_certificate_urls == (None, "https://storage.test/b.pdf")


def test_record_uploaded_url_single_field():
    wizard = RegistrationFlowMachine()
    wizard.record_uploaded_url("pan_card", "https://storage.test/pan.jpg")

    assert wizard.form_state.pan_card_url == "https://storage.test/pan.jpg"


def test_degree_certificate_url_needs_index():
    wizard = RegistrationFlowMachine(
        form_state=FormState().merged({"degree_certificates": (pdf("a.pdf"),)})
    )

    with pytest.raises(ValueError):
        wizard.record_uploaded_url("degree_certificates", "https://storage.test/a.pdf")
    assert wizard.form_state.degree_certificate_urls == ()


def test_url_for_replaced_file_discarded():
    original = jpeg("pan.jpg")
    wizard = RegistrationFlowMachine(form_state=FormState().merged({"pan_card": original}))
    wizard.update_form_state({"pan_card": jpeg("pan_corrected.jpg")})

    stored = wizard.record_uploaded_url("pan_card", "https://storage.test/pan.jpg", source=original)

    assert stored is False
    assert wizard.form_state.pan_card_url is None


def test_url_for_held_file_stored():
    original = jpeg("pan.jpg")
    wizard = RegistrationFlowMachine(form_state=FormState().merged({"pan_card": original}))

    assert wizard.record_uploaded_url("pan_card", "https://storage.test/pan.jpg", source=original)
    assert wizard.form_state.pan_card_url == "https://storage.test/pan.jpg"


def test_late_urls_after_close_ignored():
    certificate = pdf("b.pdf")
    wizard = RegistrationFlowMachine(
        form_state=FormState().merged({"degree_certificates": (pdf("a.pdf"), certificate)})
    )
    wizard.close()

    assert wizard.record_uploaded_url(
        "degree_certificates", "https://storage.test/b.pdf", index=1, source=certificate
    ) is False
    assert wizard.record_uploaded_url("pan_card", "https://storage.test/pan.jpg") is False
    assert wizard.form_state == FormState()


def test_close_discards_form_and_upload_tracking(coordinator):
    wizard = RegistrationFlowMachine(form_state=complete_form_state(), uploads=coordinator)
    wizard.next()
    wizard.close()

    assert wizard.form_state == FormState()
    assert wizard.step_errors == {}
    assert coordinator.snapshot().tasks == ()


async def test_submit_requires_orchestrator():
    wizard = RegistrationFlowMachine()
    with pytest.raises(SubmissionNotAllowedError):
        await wizard.submit()


def test_flow_info():
    wizard = RegistrationFlowMachine(prefill=PrefillData(email="asha.rao@example.com"))
    info = wizard.get_flow_info()

    assert info["state"] == "verification"
    assert info["step"] == 2
    assert info["step_title"] == "Professional & Identity Verification"
    assert info["prefill_mode"] is True
    assert info["allowed_events"] == ["advance"]


# ======================================================================
# Registry
# ======================================================================


def test_registry_builds_registration_machine():
    wizard = get_flow_machine("registration", context={"id": "abc"}, user_id="user-1")

    assert isinstance(wizard, RegistrationFlowMachine)
    assert wizard.context["id"] == "abc"
    assert wizard.is_owner("user-1")
    assert set(FLOW_REGISTRY) == {"registration", "upload_task"}


def test_registry_rejects_unknown_flow():
    with pytest.raises(ValueError):
        get_flow_machine("insurance_claim")
