import asyncio
from types import SimpleNamespace

from expense_tracker.routers.access import AllowedUsersMiddleware


def test_empty_allow_list_lets_everyone_in():
    middleware = AllowedUsersMiddleware([])
    assert middleware.is_allowed("anyone")
    assert middleware.is_allowed(None)


def test_usernames_are_normalized():
    middleware = AllowedUsersMiddleware(["@Alice", " bob ", ""])
    assert middleware.allowed == {"alice", "bob"}
    assert middleware.is_allowed("ALICE")
    assert not middleware.is_allowed("carol")
    assert not middleware.is_allowed(None)


def test_denied_update_never_reaches_handler():
    middleware = AllowedUsersMiddleware(["alice"])
    calls = []

    async def handler(event, data):
        calls.append(data["event_from_user"].username)
        return "handled"

    async def main():
        ok = await middleware(handler, SimpleNamespace(), {"event_from_user": SimpleNamespace(id=1, username="alice")})
        denied = await middleware(handler, SimpleNamespace(), {"event_from_user": SimpleNamespace(id=2, username="eve")})
        anonymous = await middleware(handler, SimpleNamespace(), {})
        return ok, denied, anonymous

    assert asyncio.run(main()) == ("handled", None, None)
    assert calls == ["alice"]
