from datetime import timedelta

import pytest

from core.errors import TransportError
from core.statuses import STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_PENDING
from datetime_utils import utc_now
from models.pending_op import OP_CREATE, OP_DELETE, OP_UPDATE
from models.task import Task
from services.connectivity import StaticConnectivity
from services.reconciler import Reconciler
from services.tasks import (
    CLIENT_REF_PREFIX,
    TaskService,
    format_minutes,
    is_sync_pending,
    task_stats,
    variance_percent,
)


class FakeServer:
    """In-memory stand-in for :class:`TasksApiClient`."""

    def __init__(self):
        self.tasks = {}
        self.calls = []
        self.down = False
        self._seq = 0

    def _check(self):
        if self.down:
            raise TransportError("connection refused")

    def list_tasks(self):
        self.calls.append(("list",))
        self._check()
        return [dict(item, _id=key) for key, item in self.tasks.items()]

    def create(self, payload, *, idempotency_key=None):
        self.calls.append(("create", idempotency_key))
        self._check()
        self._seq += 1
        key = f"srv-{self._seq}"
        self.tasks[key] = {"title": payload["title"], "status": payload.get("status")}
        return {"_id": key, **self.tasks[key]}

    def update(self, task_id, payload):
        self.calls.append(("update", task_id))
        self._check()
        self.tasks[task_id] = {"title": payload["title"], "status": payload.get("status")}

    def delete(self, task_id):
        self.calls.append(("delete", task_id))
        self._check()
        self.tasks.pop(task_id, None)


@pytest.fixture()
def server():
    return FakeServer()


@pytest.fixture()
def connectivity():
    return StaticConnectivity(True)


@pytest.fixture()
def service(server, connectivity, outbox, identity_map, cache):
    return TaskService(server, connectivity, outbox=outbox, identity_map=identity_map, cache=cache)


def test_add_online_maps_server_id(service, server, outbox, identity_map):
    task = service.add("  Write report ", estimated_minutes=90)

    assert task.id == "srv-1"
    assert task.owner_ref.startswith(CLIENT_REF_PREFIX)
    assert identity_map.get(task.owner_ref) == "srv-1"
    assert not is_sync_pending(task)
    assert server.calls == [("create", task.owner_ref)]
    assert outbox.count() == 0
    [listed] = service.list_tasks()
    assert listed.id == "srv-1"
    assert listed.owner_ref == task.owner_ref


def test_add_offline_queues_create(service, server, connectivity, outbox):
    connectivity.online = False

    task = service.add("Offline task")

    assert is_sync_pending(task)
    assert task.id == task.owner_ref
    assert server.calls == []
    [op] = outbox.list_all()
    assert op.kind == OP_CREATE
    assert op.client_ref == task.id
    assert op.payload["title"] == "Offline task"


def test_add_queues_when_server_fails(service, server, outbox):
    server.down = True

    task = service.add("Flaky")

    assert is_sync_pending(task)
    assert [op.kind for op in outbox.list_all()] == [OP_CREATE]


def test_add_requires_title(service):
    with pytest.raises(ValueError):
        service.add("   ")


def test_offline_edits_replay_after_reconnect(service, server, connectivity, outbox, identity_map, cache):
    connectivity.online = False
    task = service.add("Draft")
    service.change_status(task.id, STATUS_IN_PROGRESS)
    service.update(task.id, title="Final")
    assert [op.kind for op in sorted(outbox.list_all(), key=lambda o: o.enqueued_at)] == [
        OP_CREATE,
        OP_UPDATE,
        OP_UPDATE,
    ]

    connectivity.online = True
    report = Reconciler(server, connectivity, outbox=outbox, identity_map=identity_map, cache=cache).run()

    server_id = identity_map.get(task.id)
    assert report.created == 1 and report.updated == 2
    assert server.tasks[server_id] == {"title": "Final", "status": STATUS_IN_PROGRESS}
    assert cache.get(task.id) is None
    assert cache.get(server_id).title == "Final"


def test_remove_offline_synced_task_keeps_server_ref(service, server, connectivity, outbox, cache):
    task = service.add("Synced")
    connectivity.online = False

    service.remove(task.id)

    assert cache.get(task.id) is None
    [op] = outbox.list_all()
    assert op.kind == OP_DELETE
    assert op.server_ref == "srv-1"
    assert op.client_ref == task.owner_ref


def test_remove_unsynced_task_deletes_after_create_replays(service, server, connectivity, outbox, identity_map, cache):
    connectivity.online = False
    task = service.add("Never sent")
    service.remove(task.id)

    connectivity.online = True
    Reconciler(server, connectivity, outbox=outbox, identity_map=identity_map, cache=cache).run()

    # the create replays first, so the delete resolves through the new mapping
    assert [c[0] for c in server.calls] == ["create", "delete"]
    assert server.tasks == {}
    assert outbox.count() == 0


def test_remove_online_deletes_immediately(service, server, outbox):
    task = service.add("Short lived")

    service.remove(task.id)

    assert server.calls[-1] == ("delete", "srv-1")
    assert outbox.count() == 0


def test_toggle_tracking_accumulates_minutes(service, cache):
    task = service.add("Tracked")
    task = service.toggle_tracking(task.id)
    assert task.is_tracking is True

    started = cache.get(task.id)
    started.tracking_started_at = utc_now() - timedelta(minutes=25)
    cache.put(started)

    task = service.toggle_tracking(task.id)
    assert task.is_tracking is False
    assert task.actual_minutes == 25
    assert task.tracking_started_at is None


def test_complete_stops_tracking(service, cache):
    task = service.add("Finish me")
    service.toggle_tracking(task.id)
    running = cache.get(task.id)
    running.tracking_started_at = utc_now() - timedelta(minutes=10)
    cache.put(running)

    done = service.complete(task.id)

    assert done.status == STATUS_COMPLETED
    assert done.is_tracking is False
    assert done.actual_minutes == 10


def test_toggle_status(service):
    task = service.add("Flip")
    assert service.toggle_status(task.id).status == STATUS_COMPLETED
    assert service.toggle_status(task.id).status == STATUS_PENDING


def test_list_falls_back_to_cache_when_server_down(service, server, cache):
    service.add("Cached")
    server.down = True

    tasks = service.list_tasks()

    assert [t.title for t in tasks] == ["Cached"]


def test_update_unknown_task(service):
    with pytest.raises(KeyError):
        service.update("nope", title="x")


def test_formatting_helpers():
    assert format_minutes(0) == "0m"
    assert format_minutes(45) == "45m"
    assert format_minutes(120) == "2h"
    assert format_minutes(135) == "2h 15m"
    assert variance_percent(60, 90) == 50
    assert variance_percent(0, 10) == 0


def test_task_stats():
    tasks = [
        Task(id="1", title="a", status=STATUS_COMPLETED, estimated_minutes=60, actual_minutes=30),
        Task(id="2", title="b", status=STATUS_PENDING, pending_server=True),
    ]

    stats = task_stats(tasks)

    assert stats["total"] == 2
    assert stats["done"] == 1
    assert stats["pending_sync"] == 1
    assert stats["variance"] == -50
