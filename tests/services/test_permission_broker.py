"""PermissionBroker — pending table, resolution, listeners, deny_all."""

import asyncio

import pytest

from agentcore.core.domain_types import PermissionDecision
from agentcore.core.errors import ResourceNotFoundError
from agentcore.services.permission_broker import PermissionBroker


async def _wait_for_pending(broker, count=1):
    for _ in range(100):
        if len(broker.pending()) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError("request never became pending")


async def test_request_waits_for_resolution():
    broker = PermissionBroker()
    task = asyncio.create_task(broker.request("bash", "Run `ls`", "s1"))
    await _wait_for_pending(broker)

    [req] = broker.pending("s1")
    assert req.to_dict()["tool_name"] == "bash"
    assert req.id.startswith("perm_")
    broker.resolve(req.id, PermissionDecision.ALLOW)

    assert await task == PermissionDecision.ALLOW
    assert broker.pending() == []


async def test_resolve_unknown_request():
    with pytest.raises(ResourceNotFoundError):
        PermissionBroker().resolve("perm_missing", PermissionDecision.DENY)


async def test_resolve_twice_is_not_found():
    broker = PermissionBroker()
    task = asyncio.create_task(broker.request("write", "Write a.txt", "s1"))
    await _wait_for_pending(broker)
    req_id = broker.pending()[0].id

    broker.resolve(req_id, PermissionDecision.DENY)
    with pytest.raises(ResourceNotFoundError):
        broker.resolve(req_id, PermissionDecision.ALLOW)
    assert await task == PermissionDecision.DENY


async def test_cancelled_waiter_leaves_pending_table():
    broker = PermissionBroker()
    task = asyncio.create_task(broker.request("write", "Write a.txt", "s1"))
    await _wait_for_pending(broker)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert broker.pending() == []


async def test_pending_filters_by_session():
    broker = PermissionBroker()
    tasks = [
        asyncio.create_task(broker.request("bash", "a", "s1")),
        asyncio.create_task(broker.request("bash", "b", "s2")),
    ]
    await _wait_for_pending(broker, 2)

    assert [r.description for r in broker.pending("s2")] == ["b"]
    assert broker.deny_all("s1") == 1
    assert await tasks[0] == PermissionDecision.DENY

    broker.deny_all("s2")
    await asyncio.gather(*tasks)


async def test_listener_sees_requests_of_its_session_only():
    broker = PermissionBroker()
    seen = []
    unsubscribe = broker.subscribe("s1", lambda req: seen.append(req.tool_name))

    t1 = asyncio.create_task(broker.request("bash", "a", "s1"))
    t2 = asyncio.create_task(broker.request("fetch", "b", "s2"))
    await _wait_for_pending(broker, 2)
    unsubscribe()
    t3 = asyncio.create_task(broker.request("write", "c", "s1"))
    await _wait_for_pending(broker, 3)

    assert seen == ["bash"]
    broker.deny_all("s1")
    broker.deny_all("s2")
    await asyncio.gather(t1, t2, t3)
