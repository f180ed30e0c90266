import asyncio

from expense_tracker.errors import TransportError
from expense_tracker.scheduler.scheduler import dispatch_report
from expense_tracker.states.session import SessionStore
from conftest import FakeTransport


class FlakyTransport(FakeTransport):
    def __init__(self, failing):
        super().__init__()
        self.failing = set(failing)

    async def send_message(self, chat_id, text, reply_markup=None):
        if chat_id in self.failing:
            raise TransportError("bot was blocked by the user")
        return await super().send_message(chat_id, text, reply_markup)


def test_report_goes_to_every_known_chat():
    sessions = SessionStore()
    for chat_id in (1, 2, 3):
        sessions.get(chat_id)
    transport = FlakyTransport(failing=[2])

    async def report():
        return "📊 Weekly expense report"

    sent = asyncio.run(dispatch_report(
        transport=transport, sessions=sessions, report_fn=report, report_name="Weekly report"
    ))
    assert sent == 2
    assert sorted(s.chat_id for s in transport.sent) == [1, 3]
    assert {s.text for s in transport.sent} == {"📊 Weekly expense report"}


def test_no_chats_skips_building_the_report():
    built = []

    async def report():
        built.append(True)
        return "never"

    sent = asyncio.run(dispatch_report(
        transport=FakeTransport(), sessions=SessionStore(), report_fn=report
    ))
    assert sent == 0
    assert built == []
