"""
Unit tests for the turn accumulator and its ordered writer.

Tool calls issued together may finish in any order; the writer must still
apply their mutations in the order the calls were issued.
"""

import asyncio

import pytest

from party_wizard.domain.models import Guest
from party_wizard.workflows.common.types import SequencedWriter, TurnData, TurnServices
from party_wizard.workflows.io.database import InMemorySessionStore
from party_wizard.workflows.steps.step2_guests.trigger.actions import AddGuestInput, add_guest, confirm_guest_list
from tests.fakes import OWNER, make_state


class TestSequencedWriter:
    def test_applies_in_ticket_order_regardless_of_arrival(self):
        async def scenario():
            writer = SequencedWriter()
            applied = []
            tickets = [writer.reserve() for _ in range(3)]

            async def write(ticket, delay):
                await asyncio.sleep(delay)
                return await writer.apply(ticket, lambda: applied.append(ticket))

            await asyncio.gather(write(tickets[0], 0.03), write(tickets[1], 0.01), write(tickets[2], 0))
            return applied, writer.pending

        applied, pending = asyncio.run(scenario())

        assert applied == [0, 1, 2]
        assert pending == 0

    def test_released_ticket_unblocks_later_ones(self):
        async def scenario():
            writer = SequencedWriter()
            first, second = writer.reserve(), writer.reserve()
            await writer.release(first)
            await writer.release(first)
            return await writer.apply(second, lambda: "applied")

        assert asyncio.run(scenario()) == "applied"

    def test_unissued_ticket_is_rejected(self):
        async def scenario():
            await SequencedWriter().apply(0, lambda: None)

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())


class TestConcurrentGuestAdds:
    def test_pete_ross_dahn_keep_issue_order(self):
        """Three adds issued in order, completing last-to-first."""

        async def scenario():
            state = make_state()
            tickets = [state.writer.reserve() for _ in range(3)]

            async def add(name, ticket, delay):
                await asyncio.sleep(delay)
                return await add_guest(state, AddGuestInput(name=name), ticket=ticket)

            await asyncio.gather(
                add("Pete", tickets[0], 0.03),
                add("Ross", tickets[1], 0.02),
                add("Dahn", tickets[2], 0.0),
            )
            return state

        state = asyncio.run(scenario())

        assert [guest.name for guest in state.data.guest_list] == ["Pete", "Ross", "Dahn"]

    def test_confirmation_sees_every_earlier_add(self):
        async def scenario():
            state = make_state()
            add_ticket, confirm_ticket = state.writer.reserve(), state.writer.reserve()

            async def slow_add():
                await asyncio.sleep(0.01)
                return await add_guest(state, AddGuestInput(name="Pete"), ticket=add_ticket)

            await asyncio.gather(confirm_guest_list(state, ticket=confirm_ticket), slow_add())
            return state

        state = asyncio.run(scenario())

        assert state.confirmation.summary == "1 guest: Pete"


class TestCommit:
    def test_writes_only_dirty_fields_and_confirmation(self):
        store = InMemorySessionStore()
        session = store.create(OWNER)
        state = make_state(
            data=TurnData.from_session(session),
            services=TurnServices(store=store),
            session_id=session.id,
            owner_id=OWNER,
        )

        async def scenario():
            await add_guest(state, AddGuestInput(name="Pete"))
            await confirm_guest_list(state)

        asyncio.run(scenario())
        assert state.commit()

        stored = store.get(session.id, OWNER)
        assert stored.guest_list == (Guest(name="Pete"),)
        assert stored.party_info is None
        assert store.load_pending_confirmation(session.id).id == state.confirmation.id
        assert not state.dirty

    def test_without_session_nothing_is_written(self):
        state = make_state()
        state.update(guest_list=(Guest(name="Pete"),))

        assert state.commit() is False
        assert state.dirty == {"guest_list"}
