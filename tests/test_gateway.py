"""Tests for the authenticated request gateway."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from auth.gateway import RequestOutcome
from auth.service import ApiResponse
from conftest import commands
from core.auth_state import AuthAction
from core.exceptions import TransientServerError
from transport.envelope import EventType


def authorize(store, token="tok-2", user_name="alice"):
    store.apply(AuthAction.SET_WHITELIST_STATUS, status=True)
    store.apply(AuthAction.SET_TOKEN, token=token, user_name=user_name)


def responding(response):
    return AsyncMock(return_value=response)


@pytest.mark.asyncio
@pytest.mark.parametrize("whitelisted,logged_in", [
    (False, False),
    (True, False),
    (False, True),
])
async def test_request_suppressed_unless_whitelisted_and_logged_in(controller, store, whitelisted, logged_in):
    if whitelisted:
        store.apply(AuthAction.SET_WHITELIST_STATUS, status=True)
    if logged_in:
        store.apply(AuthAction.SET_TOKEN, token="tok", user_name="alice")
    api_request = responding(ApiResponse(status=200, body=b"{}"))
    on_error = MagicMock()

    outcome = await controller.gateway.dispatch(api_request, on_error=on_error)

    assert outcome == RequestOutcome.SUPPRESSED
    api_request.assert_not_called()
    on_error.assert_not_called()


@pytest.mark.asyncio
async def test_success_applies_handlers(controller, store):
    controller.login("tok-2", "alice")
    store.apply(AuthAction.SET_WHITELIST_STATUS, status=True)
    calls = []
    on_error = MagicMock()

    outcome = await controller.gateway.dispatch(
        responding(ApiResponse(status=200, body=b'{"rate":42}')),
        on_success=lambda: calls.append("success"),
        on_json_result=lambda result: calls.append(result),
        on_error=on_error,
    )

    assert outcome == RequestOutcome.SUCCESS
    assert calls == ["success", {"rate": 42}]
    on_error.assert_not_called()


@pytest.mark.asyncio
async def test_api_request_receives_state_snapshot(controller, store):
    authorize(store)
    api_request = responding(ApiResponse(status=204))

    await controller.gateway.dispatch(api_request)

    state = api_request.call_args.args[0]
    assert state.token == "tok-2"
    assert state.authorized


@pytest.mark.asyncio
async def test_async_handlers_are_awaited(controller, store):
    authorize(store)
    received = []

    async def on_json_result(result):
        await asyncio.sleep(0)
        received.append(result)

    await controller.gateway.dispatch(
        responding(ApiResponse(status=200, body=b"[1, 2]")),
        on_json_result=on_json_result,
    )

    assert received == [[1, 2]]


@pytest.mark.asyncio
async def test_401_invalidates_login_and_disconnects_once(controller, store, socket_client):
    authorize(store)
    on_error = MagicMock()
    on_success = MagicMock()

    outcome = await controller.gateway.dispatch(
        responding(ApiResponse(status=401, status_text="Unauthorized")),
        on_success=on_success,
        on_error=on_error,
    )

    assert outcome == RequestOutcome.LOGIN_INVALIDATED
    assert store.state.logged_in is False
    assert store.state.token is None
    assert len(commands(socket_client, EventType.DISCONNECT)) == 1
    on_error.assert_not_called()
    on_success.assert_not_called()


@pytest.mark.asyncio
async def test_401_without_handlers(controller, store, socket_client):
    authorize(store)

    await controller.gateway.dispatch(responding(ApiResponse(status=401)))

    assert store.state.logged_in is False
    assert [e.event_type for e in commands(socket_client)] == [EventType.DISCONNECT]


@pytest.mark.asyncio
async def test_403_marks_whitelist_expired_without_disconnect(controller, store, socket_client):
    authorize(store)
    on_error = MagicMock()

    outcome = await controller.gateway.dispatch(
        responding(ApiResponse(status=403, status_text="Forbidden")),
        on_error=on_error,
    )

    assert outcome == RequestOutcome.WHITELIST_EXPIRED
    assert store.state.whitelist_expired is True
    assert store.state.whitelisted is True
    assert store.state.logged_in is True
    assert commands(socket_client, EventType.DISCONNECT) == []
    on_error.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("response,message", [
    (ApiResponse(status=500, status_text="Internal Server Error"), "Internal Server Error"),
    (ApiResponse(status=502), "Server error (502)"),
    (ApiResponse(status=404, status_text=""), "Server error (404)"),
])
async def test_other_failures_reach_error_handler(controller, store, response, message):
    authorize(store)
    errors = []

    outcome = await controller.gateway.dispatch(responding(response), on_error=errors.append)

    assert outcome == RequestOutcome.ERROR
    assert len(errors) == 1
    assert isinstance(errors[0], TransientServerError)
    assert errors[0].message == message
    assert errors[0].status == response.status


@pytest.mark.asyncio
async def test_raised_exception_reaches_error_handler(controller, store):
    authorize(store)
    errors = []
    api_request = AsyncMock(side_effect=ConnectionError("Connection refused"))

    outcome = await controller.gateway.dispatch(api_request, on_error=errors.append)

    assert outcome == RequestOutcome.ERROR
    assert str(errors[0]) == "Connection refused"


@pytest.mark.asyncio
async def test_undecodable_body_reaches_error_handler(controller, store):
    authorize(store)
    errors = []
    results = []

    await controller.gateway.dispatch(
        responding(ApiResponse(status=200, body=b"<html>")),
        on_json_result=results.append,
        on_error=errors.append,
    )

    assert results == []
    assert len(errors) == 1


@pytest.mark.asyncio
async def test_hung_request_times_out(controller, store):
    authorize(store)
    controller.gateway.request_timeout = 0.05
    errors = []

    async def hang(state):
        await asyncio.sleep(5)

    outcome = await controller.gateway.dispatch(hang, on_error=errors.append)

    assert outcome == RequestOutcome.ERROR
    assert errors[0].message == "Request timed out after 0.05s"


@pytest.mark.asyncio
async def test_errors_never_escape(controller, store):
    authorize(store)

    def broken_handler(error):
        raise RuntimeError("handler failed")

    outcome = await controller.gateway.dispatch(
        AsyncMock(side_effect=RuntimeError("boom")),
        on_error=broken_handler,
    )
    assert outcome == RequestOutcome.ERROR

    # Without an error handler the failure is simply dropped
    assert await controller.gateway.dispatch(AsyncMock(side_effect=RuntimeError("boom"))) == RequestOutcome.ERROR


@pytest.mark.asyncio
async def test_submit_is_fire_and_forget(controller, store):
    authorize(store)
    results = []

    task = controller.gateway.submit(
        responding(ApiResponse(status=200, body=b'{"rate":42}')),
        on_json_result=results.append,
    )
    assert results == []

    await controller.gateway.drain()

    assert task.done()
    assert task.result() == RequestOutcome.SUCCESS
    assert results == [{"rate": 42}]


@pytest.mark.asyncio
async def test_synchronous_json_body_reaches_result_handler(controller, store):
    authorize(store)
    results = []
    errors = []
    response = SimpleNamespace(ok=True, status=200, status_text="", json=lambda: {"rate": 42})

    outcome = await controller.gateway.dispatch(
        responding(response),
        on_json_result=results.append,
        on_error=errors.append,
    )

    assert outcome == RequestOutcome.SUCCESS
    assert results == [{"rate": 42}]
    assert errors == []
