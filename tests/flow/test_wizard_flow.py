"""
End-to-end wizard flows through WizardOrchestrator.process_turn.

Collaborators are in-memory fakes; the model backend, when present, replays
scripted attempts. Reference time is Monday 2026-02-16 09:00 UTC.
"""

import pytest

from party_wizard.agents.fallback_engine import GENERIC_FALLBACK_MESSAGE
from party_wizard.domain.messages import ConfirmationRequest
from party_wizard.domain.models import FINAL_STEP_INDEX, MenuPlan, WizardStep
from party_wizard.domain.serialization import serialize_fields
from party_wizard.errors import (
    SessionClosedError,
    SessionIncompleteError,
    SessionNotFoundError,
    StepLockedError,
    UnknownStepError,
)
from party_wizard.workflows.runtime.hil_tasks import STALE_APPROVAL_TEXT, timeline_created_text
from party_wizard.workflows.steps.step3_menu.trigger.actions import IMAGE_ALREADY_ADDED, URL_ALREADY_ADDED
from tests.fakes import (
    OWNER,
    FakeRecipeExtractor,
    FakeScheduler,
    ScriptedAttempt,
    ScriptedBackend,
    approve,
    confirmation_request,
    event_types,
    make_party_info,
    make_recipe,
    revise,
    run_turn,
    texts,
)

PARTY_TEXT = 'Birthday party called "Sam\'s 30th" on Saturday at 7pm at the park, potluck'
IMAGE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUg=="


def seed(harness, session_id, step, watermark, **payloads):
    fields = {"current_step": step, "furthest_step_index": watermark, "party_info": make_party_info()}
    fields.update(payloads)
    harness.store.update_partial(session_id, OWNER, serialize_fields(fields))


# ==============================================================================
# PARTY INFO + GUESTS (deterministic)
# ==============================================================================


class TestDeterministicSteps:
    def test_party_info_turn_issues_confirmation(self, harness):
        sid = harness.new_session()

        events = run_turn(harness.orchestrator, sid, PARTY_TEXT)

        assert event_types(events) == ["text", "step-confirmation-request"]
        request = confirmation_request(events)
        assert request["step"] == "party-info"
        assert request["next_step"] == "guests"
        assert request["summary"] == "Party: Sam's 30th on Saturday, February 21, 2026, 7:00 PM at the park"

        session = harness.session(sid)
        assert session.party_info.allow_contributions is True
        assert session.current_step == WizardStep.PARTY_INFO
        assert harness.store.load_pending_confirmation(sid).id == request["id"]
        messages = harness.store.list_messages(sid, WizardStep.PARTY_INFO)
        assert [m.role for m in messages] == ["user", "assistant"]
        assert harness.telemetry.turns[-1].decision_path == "deterministic"
        assert harness.telemetry.turns[-1].intent == "confirm-party-info"

    def test_approve_advances_and_replay_is_stale(self, harness):
        sid = harness.new_session()
        request = confirmation_request(run_turn(harness.orchestrator, sid, PARTY_TEXT))

        events = run_turn(harness.orchestrator, sid, decision=approve(request["id"]))

        assert event_types(events) == ["step-confirmed"]
        assert events[0].data["next_step"] == "guests"
        session = harness.session(sid)
        assert session.current_step == WizardStep.GUESTS
        assert session.furthest_step_index == 1
        assert harness.store.load_pending_confirmation(sid) is None

        replay = run_turn(harness.orchestrator, sid, decision=approve(request["id"]), step="party-info")

        assert texts(replay) == [STALE_APPROVAL_TEXT]
        assert harness.session(sid).current_step == WizardStep.GUESTS
        assert harness.telemetry.turns[-1].intent == "stale-approve"

    def test_guest_list_and_confirmation(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "guests", 1)

        run_turn(harness.orchestrator, sid, "Pete\nRoss - ross@example.com\nDahn 555-123-4567")
        events = run_turn(harness.orchestrator, sid, "that's all")

        guests = harness.session(sid).guest_list
        assert [g.label for g in guests] == ["Pete", "Ross", "Dahn"]
        assert guests[1].email == "ross@example.com"
        assert confirmation_request(events)["summary"] == "3 guests: Pete, Ross, Dahn"

    def test_guest_changes_ask_for_session_refresh(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "guests", 1)

        added = run_turn(harness.orchestrator, sid, "add Pete")
        confirmed = run_turn(harness.orchestrator, sid, "done")

        assert event_types(added) == ["text", "session-refresh"]
        assert added[1].data == {"action": "updateGuestList"}
        assert "session-refresh" not in event_types(confirmed)

    def test_failed_resolver_action_reports_its_message(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "guests", 1)

        events = run_turn(harness.orchestrator, sid, "remove #4")

        assert texts(events) == ["That guest number is not on the list."]

    def test_revise_consumes_request_and_uses_feedback(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "guests", 1)
        request = confirmation_request(run_turn(harness.orchestrator, sid, "done"))

        run_turn(harness.orchestrator, sid, decision=revise(request["id"], "add mira@example.com"))

        assert [g.email for g in harness.session(sid).guest_list] == ["mira@example.com"]
        assert harness.store.load_pending_confirmation(sid) is None
        stale = run_turn(harness.orchestrator, sid, decision=approve(request["id"]))
        assert texts(stale) == [STALE_APPROVAL_TEXT]
        assert harness.session(sid).current_step == WizardStep.GUESTS

    def test_stale_revise_is_an_ordinary_message(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "guests", 1)
        live = confirmation_request(run_turn(harness.orchestrator, sid, "done"))

        run_turn(harness.orchestrator, sid, "add Zoe", decision=revise("not-a-live-id", "remove everyone"))

        assert [g.name for g in harness.session(sid).guest_list] == ["Zoe"]
        assert harness.store.load_pending_confirmation(sid).id == live["id"]

    def test_decision_is_stored_on_user_message(self, harness):
        sid = harness.new_session()
        request = confirmation_request(run_turn(harness.orchestrator, sid, PARTY_TEXT))

        run_turn(harness.orchestrator, sid, decision=approve(request["id"]))

        user_turn = harness.store.list_messages(sid, WizardStep.PARTY_INFO)[-2]
        assert user_turn.parts[-1]["type"] == "data-step-confirmation-decision"
        assert user_turn.parts[-1]["data"]["request_id"] == request["id"]


# ==============================================================================
# MENU SHORTCUTS
# ==============================================================================


class TestMenuShortcuts:
    def test_image_is_extracted_once(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        events = run_turn(harness.orchestrator, sid, images=[IMAGE])

        assert event_types(events) == ["text", "recipe-extracted"]
        assert texts(events)[0].startswith('I extracted "Lemon Tart" from your image and added it to the menu! 2 ingredients and 3 steps.')
        plan = harness.session(sid).menu_plan
        assert plan.new_recipes[0].source_type == "photo"
        assert len(plan.processed_image_hashes) == 1

        again = run_turn(harness.orchestrator, sid, images=[IMAGE])

        assert texts(again) == [IMAGE_ALREADY_ADDED]
        assert len(harness.extractor.calls) == 1
        assert len(harness.session(sid).menu_plan.new_recipes) == 1
        assert harness.telemetry.turns[-1].intent == "image-duplicate"

    def test_image_data_is_not_persisted(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        run_turn(harness.orchestrator, sid, "this one", images=[IMAGE])

        user_turn = harness.store.list_messages(sid, WizardStep.MENU)[0]
        assert {"type": "image", "image_stripped": True, "mime_type": "image/png"} in user_turn.parts
        assert IMAGE not in str(user_turn.parts)

    def test_pasted_url_is_imported_once(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        events = run_turn(harness.orchestrator, sid, "try https://example.com/tart.")

        assert texts(events)[0].startswith('I imported "Lemon Tart" from that URL')
        assert harness.fetcher.urls == ["https://example.com/tart"]
        assert harness.session(sid).menu_plan.processed_urls == ("https://example.com/tart",)

        again = run_turn(harness.orchestrator, sid, "https://example.com/tart")

        assert texts(again) == [URL_ALREADY_ADDED]
        assert harness.fetcher.urls == ["https://example.com/tart"]

    def test_removed_url_import_can_be_imported_again(self, make_harness):
        backend = ScriptedBackend(
            ScriptedAttempt(text="Removed it.", tool_calls=[("removeMenuItem", {"index": 0, "isNewRecipe": True})])
        )
        harness = make_harness(backend)
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        run_turn(harness.orchestrator, sid, "try https://example.com/tart")
        run_turn(harness.orchestrator, sid, "actually drop the tart")

        plan = harness.session(sid).menu_plan
        assert plan.new_recipes == ()
        assert plan.processed_urls == ()

        again = run_turn(harness.orchestrator, sid, "https://example.com/tart")

        assert texts(again)[0].startswith('I imported "Lemon Tart" from that URL')
        assert harness.fetcher.urls == ["https://example.com/tart", "https://example.com/tart"]
        assert [kind for kind, _ in harness.extractor.calls] == ["content", "content"]
        assert harness.session(sid).menu_plan.processed_urls == ("https://example.com/tart",)

    def test_extraction_failure_falls_through_to_model(self, make_harness):
        backend = ScriptedBackend(ScriptedAttempt(text="I couldn't read that photo. What dish is it?"))
        harness = make_harness(backend, extractor=FakeRecipeExtractor(error=ValueError("blurry")))
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        events = run_turn(harness.orchestrator, sid, "from my cookbook", images=[IMAGE])

        assert texts(events) == ["I couldn't read that photo. What dish is it?"]
        content = backend.calls[0]["messages"][-1]["content"]
        assert content[0] == {"type": "text", "text": "from my cookbook"}
        assert content[1]["image_url"]["url"] == IMAGE
        assert harness.session(sid).menu_plan is None


# ==============================================================================
# MODEL FALLBACK
# ==============================================================================


class TestModelFallback:
    def test_no_backend_gives_generic_fallback(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        events = run_turn(harness.orchestrator, sid, "what should I cook?")

        assert texts(events) == [GENERIC_FALLBACK_MESSAGE]
        turn = harness.telemetry.turns[-1]
        assert turn.decision_path == "model"
        assert turn.fallback_message == GENERIC_FALLBACK_MESSAGE

    def test_deterministic_disabled_goes_to_model(self, make_harness):
        backend = ScriptedBackend(ScriptedAttempt(text="Got it!", tool_calls=[("addGuest", {"name": "Pete"})]))
        harness = make_harness(backend, deterministic_enabled=False)
        sid = harness.new_session()
        seed(harness, sid, "guests", 1)

        events = run_turn(harness.orchestrator, sid, "add Pete")

        assert texts(events) == ["Got it!"]
        assert len(backend.calls) == 1
        assert [g.name for g in harness.session(sid).guest_list] == ["Pete"]

    def test_silent_attempt_is_retried(self, make_harness):
        backend = ScriptedBackend(ScriptedAttempt(), ScriptedAttempt(text="Which dishes are you thinking of?"))
        harness = make_harness(backend)
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        events = run_turn(harness.orchestrator, sid, "hmm")

        assert texts(events) == ["Which dishes are you thinking of?"]
        turn = harness.telemetry.turns[-1]
        assert turn.retry_attempted and turn.retry_succeeded
        assert [a.model_tier for a in harness.telemetry.attempts] == ["default", "strong"]

    def test_parallel_tool_calls_keep_issue_order(self, make_harness):
        backend = ScriptedBackend(
            ScriptedAttempt(
                text="Added all three.",
                tool_calls=[("addGuest", {"name": "Pete"}), ("addGuest", {"name": "Ross"}), ("addGuest", {"name": "Dahn"})],
                reverse_completion=True,
            )
        )
        harness = make_harness(backend, deterministic_enabled=False)
        sid = harness.new_session()
        seed(harness, sid, "guests", 1)

        run_turn(harness.orchestrator, sid, "Pete, Ross and Dahn")

        assert [g.name for g in harness.session(sid).guest_list] == ["Pete", "Ross", "Dahn"]

    def test_revision_feedback_reaches_the_prompt(self, make_harness):
        backend = ScriptedBackend(
            ScriptedAttempt(
                text="Moved to Sunday.",
                tool_calls=[("confirmPartyInfo", {"name": "Sam's 30th", "dateTimeInput": "Sunday at 6pm"})],
            )
        )
        harness = make_harness(backend, deterministic_enabled=False)
        sid = harness.new_session()
        seed(harness, sid, "party-info", 0)
        request = ConfirmationRequest(step=WizardStep.PARTY_INFO, next_step=WizardStep.GUESTS, summary="Party: Sam's 30th")
        harness.store.save_pending_confirmation(sid, request)

        events = run_turn(harness.orchestrator, sid, decision=revise(request.id, "make it Sunday at 6pm"))

        prompt = backend.calls[0]["system_prompt"]
        assert "REVISION IN PROGRESS" in prompt
        assert '"make it Sunday at 6pm"' in prompt
        assert backend.calls[0]["messages"][-1] == {"role": "user", "content": "make it Sunday at 6pm"}
        assert confirmation_request(events)["id"] != request.id
        assert harness.session(sid).party_info.date_time.day == 22


# ==============================================================================
# FULL WALKTHROUGH
# ==============================================================================


class TestFullWizard:
    def test_menu_approval_generates_timeline_and_completes(self, make_harness):
        backend = ScriptedBackend(
            ScriptedAttempt(text="Here is your menu.", tool_calls=[("confirmMenu", {"ambitionLevel": "simple"})]),
            ScriptedAttempt(text="Ready when you are.", tool_calls=[("confirmTimeline", {})]),
        )
        harness = make_harness(backend, scheduler=FakeScheduler())
        orchestrator = harness.orchestrator
        sid = harness.new_session()

        approve_party = confirmation_request(run_turn(orchestrator, sid, PARTY_TEXT))
        run_turn(orchestrator, sid, decision=approve(approve_party["id"]))
        run_turn(orchestrator, sid, "add Pete")
        guests = confirmation_request(run_turn(orchestrator, sid, "that's all"))
        run_turn(orchestrator, sid, decision=approve(guests["id"]))
        run_turn(orchestrator, sid, images=[IMAGE])
        menu = confirmation_request(run_turn(orchestrator, sid, "looks good"))
        assert menu["summary"] == "1 recipe: Lemon Tart"

        approved = run_turn(orchestrator, sid, decision=approve(menu["id"]))

        assert event_types(approved) == ["step-confirmed", "text", "timeline-generated"]
        assert texts(approved) == [timeline_created_text(3)]
        session = harness.session(sid)
        assert session.current_step == WizardStep.TIMELINE
        assert len(session.timeline) == 3
        assert harness.store.list_messages(sid, WizardStep.TIMELINE)[0].content == timeline_created_text(3)

        timeline = confirmation_request(run_turn(orchestrator, sid, "perfect"))
        assert timeline["next_step"] == "complete"
        done = run_turn(orchestrator, sid, decision=approve(timeline["id"]))

        assert done[0].data["next_step"] == "complete"
        session = harness.session(sid)
        assert session.current_step == WizardStep.TIMELINE
        assert session.furthest_step_index == FINAL_STEP_INDEX

        summary = orchestrator.complete_session(sid, OWNER)

        assert summary["guests"] == 1
        assert summary["recipes"] == 1
        assert summary["timeline_tasks"] == 3
        assert harness.session(sid).status == "completed"
        with pytest.raises(SessionClosedError):
            run_turn(orchestrator, sid, "one more thing")

    def test_timeline_failure_still_approves_menu(self, make_harness):
        harness = make_harness(scheduler=FakeScheduler(error=RuntimeError("model down")))
        sid = harness.new_session()
        seed(harness, sid, "menu", 2, menu_plan=MenuPlan(new_recipes=(make_recipe(),)))
        request = ConfirmationRequest(step=WizardStep.MENU, next_step=WizardStep.TIMELINE, summary="1 recipe: Lemon Tart")
        harness.store.save_pending_confirmation(sid, request)

        events = run_turn(harness.orchestrator, sid, decision=approve(request.id))

        assert event_types(events) == ["step-confirmed"]
        assert harness.scheduler.generated == 1
        assert harness.session(sid).current_step == WizardStep.TIMELINE
        assert harness.session(sid).timeline is None

    def test_menu_approval_without_a_plan_skips_timeline(self, make_harness):
        harness = make_harness(scheduler=FakeScheduler())
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)
        request = ConfirmationRequest(step=WizardStep.MENU, next_step=WizardStep.TIMELINE, summary="No recipes added yet")
        harness.store.save_pending_confirmation(sid, request)

        events = run_turn(harness.orchestrator, sid, decision=approve(request.id))

        assert event_types(events) == ["step-confirmed"]
        assert harness.scheduler.generated == 0
        assert harness.session(sid).current_step == WizardStep.TIMELINE
        assert harness.session(sid).timeline is None


# ==============================================================================
# SESSION LIFECYCLE
# ==============================================================================


class TestSessionLifecycle:
    def test_get_or_create_reuses_active_session(self, harness):
        first, messages = harness.orchestrator.get_or_create_session(OWNER)
        second, _ = harness.orchestrator.get_or_create_session(OWNER)

        assert first.id == second.id
        assert messages == []

    def test_start_new_session_abandons_previous(self, harness):
        old, _ = harness.orchestrator.get_or_create_session(OWNER)

        new = harness.orchestrator.start_new_session(OWNER)

        assert new.id != old.id
        assert harness.session(old.id).status == "abandoned"
        with pytest.raises(SessionClosedError):
            run_turn(harness.orchestrator, old.id, "hello")

    def test_change_step_respects_watermark(self, harness):
        sid = harness.new_session()
        seed(harness, sid, "menu", 2)

        session, _ = harness.orchestrator.change_step(sid, OWNER, "party-info")
        assert session.current_step == WizardStep.PARTY_INFO
        assert session.furthest_step_index == 2

        with pytest.raises(StepLockedError):
            harness.orchestrator.change_step(sid, OWNER, "timeline")
        with pytest.raises(UnknownStepError):
            harness.orchestrator.change_step(sid, OWNER, "dessert-bar")

    def test_turns_are_owner_scoped(self, harness):
        sid = harness.new_session()

        with pytest.raises(SessionNotFoundError):
            run_turn(harness.orchestrator, sid, "hello", owner_id="intruder")
        assert harness.store.list_messages(sid, WizardStep.PARTY_INFO) == []

    def test_unknown_step_aborts_before_writing(self, harness):
        sid = harness.new_session()

        with pytest.raises(UnknownStepError):
            run_turn(harness.orchestrator, sid, "hello", step="dessert-bar")
        assert harness.store.list_messages(sid, WizardStep.PARTY_INFO) == []

    def test_complete_requires_party_info(self, harness):
        sid = harness.new_session()

        with pytest.raises(SessionIncompleteError):
            harness.orchestrator.complete_session(sid, OWNER)
