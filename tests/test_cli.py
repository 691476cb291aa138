import pytest

import main as cli
from services.connectivity import StaticConnectivity
from services.reconciler import Reconciler
from services.tasks import TaskService


@pytest.fixture()
def offline_app(monkeypatch, outbox, identity_map, cache):
    connectivity = StaticConnectivity(False)
    stores = dict(outbox=outbox, identity_map=identity_map, cache=cache)
    service = TaskService(None, connectivity, **stores)
    reconciler = Reconciler(None, connectivity, **stores)
    monkeypatch.setattr(cli, "init_db", lambda: None)
    monkeypatch.setattr(cli, "_build", lambda args: (service, reconciler))
    return service


def test_add_list_and_pending_offline(offline_app, capsys):
    assert cli.main(["add", "Buy milk", "-e", "15"]) == 0
    task_id = capsys.readouterr().out.strip()

    assert cli.main(["list"]) == 0
    listing = capsys.readouterr().out
    assert "Buy milk (pending sync)" in listing
    assert "0m/15m" in listing
    assert "1 queued" in listing

    assert cli.main(["pending"]) == 0
    assert task_id in capsys.readouterr().out


def test_sync_reports_offline(offline_app, capsys):
    assert cli.main(["sync"]) == 0
    assert "Offline" in capsys.readouterr().out


def test_unknown_task_exit_code(offline_app, capsys):
    assert cli.main(["done", "missing"]) == 1
    assert "Unknown task" in capsys.readouterr().err


def test_empty_title_exit_code(offline_app, capsys):
    assert cli.main(["add", "  "]) == 2


def test_list_search_matches_title_or_description(offline_app, capsys):
    cli.main(["add", "Buy milk"])
    cli.main(["add", "Call plumber", "-d", "Kitchen SINK leaks"])
    cli.main(["add", "Read book"])
    capsys.readouterr()

    assert cli.main(["list", "--search", "sink"]) == 0
    listing = capsys.readouterr().out
    assert "Call plumber" in listing
    assert "Buy milk" not in listing
    assert "Read book" not in listing

    cli.main(["list", "--search", "MILK"])
    listing = capsys.readouterr().out
    assert "Buy milk" in listing
    assert "Call plumber" not in listing
