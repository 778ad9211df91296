import json

import pytest
from unittest.mock import MagicMock

from phab.config import PhabricatorClientConfig
from phab.services.phabricator import PhabricatorClient


# --- Canned Conduit responses ---

BOARDS = {
    "PHID-PROJ-sprint": {
        "columns": [
            {"id": 42, "phid": "PHID-PCOL-doing", "name": "Doing"},
            {"id": 43, "phid": "PHID-PCOL-done", "name": "Done"},
        ],
    },
}


def make_task_json(
    task_id: int,
    name: str = "Do the thing",
    status: str = "open",
    project_phids: list[str] | None = None,
    boards: dict | list | None = None,
    points=None,
    owner_phid: str | None = None,
) -> dict:
    return {
        "id": task_id,
        "type": "TASK",
        "phid": f"PHID-TASK-{task_id}",
        "fields": {
            "name": name,
            "description": {"raw": f"Description of T{task_id}"},
            "authorPHID": "PHID-USER-author",
            "ownerPHID": owner_phid,
            "status": {"value": status, "name": status.title(), "color": None},
            "priority": {"value": 50, "name": "Normal", "color": "orange"},
            "points": points,
            "subtype": "default",
            "dateCreated": 1577836800,
            "dateModified": 1577923200,
        },
        "attachments": {
            "columns": {"boards": boards if boards is not None else []},
            "projects": {"projectPHIDs": project_phids or []},
        },
    }


MANIPHEST_TASK = make_task_json(
    1234,
    name="Ship phab",
    project_phids=["PHID-PROJ-other", "PHID-PROJ-sprint"],
    boards=BOARDS,
    points="3",
    owner_phid="PHID-USER-owner",
)

USER_JSON = {
    "id": 7,
    "type": "USER",
    "phid": "PHID-USER-owner",
    "fields": {
        "username": "alice",
        "realName": "Alice Liddell",
        "roles": ["verified", "approved", "activated"],
        "dateCreated": 1500000000,
        "dateModified": 1600000000,
    },
}


def conduit_response(data) -> dict:
    return {
        "result": {
            "data": data,
            "maps": {},
            "query": {"queryKey": None},
            "cursor": {"limit": 100, "after": None, "before": None, "order": "oldest"},
        },
        "error_code": None,
        "error_info": None,
    }


def make_response(body, status_code: int = 200, text: str | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body
    resp.text = text if text is not None else json.dumps(body)
    return resp


def fake_conduit(tasks: dict[str, dict], children: dict[str, list[str]], failing_parents: dict[str, str] | None = None):
    """Build a ``session.post`` side effect serving maniphest.search from an in-memory tree.

    ``failing_parents`` maps a parent id to the body of an HTTP 500 returned for its children query.
    """
    failing_parents = failing_parents or {}

    def post(url, data):
        form = dict(data)
        parent_id = form.get("constraints[parentIDs][0]")
        if parent_id is not None:
            if parent_id in failing_parents:
                return make_response({}, status_code=500, text=failing_parents[parent_id])
            return make_response(conduit_response([tasks[c] for c in children.get(parent_id, [])]))
        ids = [value for key, value in data if key.startswith("constraints[ids]")]
        return make_response(conduit_response([tasks[i] for i in ids if i in tasks]))

    return post


def posted_parent_ids(mock_session) -> list[str]:
    parents = []
    for call in mock_session.post.call_args_list:
        form = dict(call.kwargs["data"])
        if "constraints[parentIDs][0]" in form:
            parents.append(form["constraints[parentIDs][0]"])
    return parents


@pytest.fixture
def client_config():
    return PhabricatorClientConfig(host="https://phab.example.com/", api_token="api-secret")


@pytest.fixture
def mock_session(mocker):
    session = MagicMock()
    mocker.patch("phab.services.phabricator.build_session", return_value=(session, None))
    return session


@pytest.fixture
def client(mock_session, client_config):
    """PhabricatorClient whose HTTP session is a mock."""
    return PhabricatorClient(client_config)
