from unittest.mock import MagicMock

import pytest
import requests

from core.errors import TransportError
from services.api_client import TasksApiClient
from services.connectivity import HttpConnectivity, StaticConnectivity


def create_mock_response(status_code=200, json_data=None, content=b"{}"):
    """Creates a mock requests.Response object."""
    mock_resp = MagicMock()
    mock_resp.status_code = status_code
    mock_resp.content = content
    mock_resp.json.return_value = json_data
    return mock_resp


@pytest.fixture()
def session():
    mock = MagicMock(spec=requests.Session)
    mock.headers = {}
    return mock


@pytest.fixture()
def client(session):
    return TasksApiClient("http://fake-server.test/api/", token="secret", timeout=5, session=session)


def test_auth_header_and_base_url(client, session):
    assert client.collection_url == "http://fake-server.test/api/tasks"
    assert session.headers["Authorization"] == "Bearer secret"

    client.set_auth(None)
    assert "Authorization" not in session.headers


def test_create_unwraps_task_and_sends_idempotency_key(client, session):
    session.request.return_value = create_mock_response(201, {"task": {"_id": "srv-1", "title": "A"}})

    result = client.create(
        {"_id": "local-1", "title": "A", "status": "Pending", "ownerRef": "local-1"},
        idempotency_key="local-1",
    )

    assert result == {"_id": "srv-1", "title": "A"}
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("POST", "http://fake-server.test/api/tasks")
    assert kwargs["json"] == {"title": "A", "status": "Pending"}
    assert kwargs["headers"] == {"Idempotency-Key": "local-1"}
    assert kwargs["timeout"] == 5


def test_create_accepts_bare_object(client, session):
    session.request.return_value = create_mock_response(200, {"id": 7})

    assert client.create({"title": "A"}) == {"id": 7}


def test_update_and_delete_target_server_id(client, session):
    session.request.return_value = create_mock_response(204, None, content=b"")

    assert client.update("srv-1", {"title": "B"}) is None
    assert session.request.call_args.args == ("PUT", "http://fake-server.test/api/tasks/srv-1")

    client.delete("srv-1")
    assert session.request.call_args.args == ("DELETE", "http://fake-server.test/api/tasks/srv-1")


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"items": [{"_id": "1"}]}, [{"_id": "1"}]),
        ([{"_id": "2"}], [{"_id": "2"}]),
        ({"unexpected": True}, []),
    ],
)
def test_list_tasks_shapes(client, session, data, expected):
    session.request.return_value = create_mock_response(200, data)

    assert client.list_tasks() == expected


def test_http_error_raises_transport_error(client, session):
    session.request.return_value = create_mock_response(500, {"error": "boom"})

    with pytest.raises(TransportError) as excinfo:
        client.create({"title": "A"})
    assert excinfo.value.status_code == 500


def test_network_error_raises_transport_error(client, session):
    session.request.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(TransportError) as excinfo:
        client.delete("srv-1")
    assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)
    assert excinfo.value.status_code is None


def test_invalid_json_raises_transport_error(client, session):
    response = create_mock_response(200, None, content=b"<html>")
    response.json.side_effect = ValueError("not json")
    session.request.return_value = response

    with pytest.raises(TransportError):
        client.update("srv-1", {"title": "A"})


def test_http_connectivity(session):
    probe = HttpConnectivity("http://fake-server.test/health", timeout=1, session=session)
    assert probe.is_online() is True
    session.head.assert_called_once_with("http://fake-server.test/health", timeout=1, allow_redirects=True)

    session.head.side_effect = requests.exceptions.Timeout()
    assert probe.is_online() is False


def test_static_connectivity():
    assert StaticConnectivity().is_online() is True
    assert StaticConnectivity(False).is_online() is False
