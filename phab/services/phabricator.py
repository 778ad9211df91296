"""Conduit API client for Maniphest tasks and users.

Every lookup is a single form-encoded POST to ``{host}/api/<method>``. The blocking
``requests`` calls run in worker threads so sibling subtask fetches can overlap.
"""

import asyncio
import logging

import requests
from pydantic import ValidationError as PydanticValidationError

from phab.config import PhabricatorClientConfig
from phab.exceptions import (
    AuthenticationError,
    FetchSubTasksError,
    IntegrationError,
    ParseError,
    PhabError,
    RateLimitError,
    ValidationError,
)
from phab.http_client import build_session
from phab.models.maniphest import Board, Task, TaskFamily
from phab.models.user import User

logger = logging.getLogger(__name__)

TASK_SEARCH_OPTIONS = [
    ("order", "oldest"),
    ("attachments[columns]", "true"),
    ("attachments[projects]", "true"),
]


def _handle_response(resp: requests.Response) -> dict:
    if resp.status_code == 429:
        raise RateLimitError("Phabricator rate limit exceeded. Try again later.")
    if resp.status_code in (401, 403):
        raise AuthenticationError(f"Phabricator auth error ({resp.status_code}): {resp.text[:200]}")
    if resp.status_code >= 400:
        raise IntegrationError(f"Conduit API error ({resp.status_code}): {resp.text[:200]}")
    try:
        body = resp.json()
    except ValueError as e:
        raise ParseError(f"Cannot parse {resp.text[:200]}") from e
    if not isinstance(body, dict):
        raise ParseError(f"Cannot parse {body}")

    error_code = body.get("error_code")
    if error_code:
        error_info = body.get("error_info") or ""
        if error_code == "ERR-INVALID-AUTH":
            raise AuthenticationError(f"Conduit auth error: {error_info}")
        raise IntegrationError(f"Conduit error {error_code}: {error_info}")
    return body


def _mask_token(form: list[tuple[str, str]]) -> list[tuple[str, str]]:
    return [(key, "***" if key == "api.token" else value) for key, value in form]


def _int_field(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"Expected an integer {name}, got {value!r}")
    return value


def _parse_points(value) -> int | None:
    """Story points arrive as a number, a numeric string or null."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int) or value < 0:
        return None
    return value


def guess_board_from_projects(boards, project_phids: list[str]) -> Board | None:
    """Pick the first column of the first project in ``project_phids`` that has a board.

    ``boards`` is the ``attachments.columns.boards`` object, keyed by project phid.
    Conduit serialises an empty object as ``[]``.
    """
    if isinstance(boards, list) and not boards:
        return None
    if not isinstance(boards, dict):
        raise ParseError(f"Boards is not an object {boards!r}")

    for phid in project_phids:
        board = boards.get(phid)
        if board is None:
            continue
        columns = board.get("columns") or []
        if not columns:
            return None
        column = columns[0]
        return Board(id=_int_field(column["id"], "column id"), phid=column["phid"], name=column["name"])
    return None


def parse_task(item: dict) -> Task:
    try:
        fields = item["fields"]
        attachments = item["attachments"]
        project_phids = attachments["projects"]["projectPHIDs"]
        if not isinstance(project_phids, list):
            raise ParseError(f"Project phids is not an array {project_phids!r}")

        return Task(
            id=str(_int_field(item["id"], "task id")),
            task_type=item["type"],
            phid=item["phid"],
            name=fields["name"],
            description=fields["description"]["raw"],
            author_phid=fields["authorPHID"],
            assigned_phid=fields.get("ownerPHID"),
            status=fields["status"]["value"],
            priority=fields["priority"]["name"],
            point=_parse_points(fields.get("points")),
            project_phids=project_phids,
            board=guess_board_from_projects(attachments["columns"]["boards"], project_phids),
            created_at=_int_field(fields["dateCreated"], "dateCreated"),
            updated_at=_int_field(fields["dateModified"], "dateModified"),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise ParseError(f"Cannot parse task {item!r}: {e!r}") from e
    except PydanticValidationError as e:
        raise ParseError(f"Cannot parse task {item!r}: {e}") from e


def parse_user(item: dict) -> User:
    try:
        fields = item["fields"]
        return User(
            id=str(_int_field(item["id"], "user id")),
            phid=item["phid"],
            username=fields["username"],
            name=fields["realName"],
            created_at=_int_field(fields["dateCreated"], "dateCreated"),
            updated_at=_int_field(fields["dateModified"], "dateModified"),
        )
    except (KeyError, TypeError) as e:
        raise ParseError(f"Cannot parse user {item!r}: {e!r}") from e
    except PydanticValidationError as e:
        raise ParseError(f"Cannot parse user {item!r}: {e}") from e


class PhabricatorClient:
    def __init__(self, config: PhabricatorClientConfig):
        self.host = config.host.rstrip("/")
        self._api_token = config.api_token
        self._session, self._identity_file = build_session(config)

    def close(self) -> None:
        self._session.close()
        if self._identity_file is not None:
            self._identity_file.unlink(missing_ok=True)
            self._identity_file = None

    def __enter__(self) -> "PhabricatorClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def clean_id(task_id: str) -> str:
        """Strip the "T" prefix used in task URLs, e.g. ``phab.example.com/T1234``."""
        return task_id.removeprefix("T")

    async def _search(self, method: str, form: list[tuple[str, str]]) -> list[dict]:
        """POST a ``*.search`` call and return ``result.data``."""
        url = f"{self.host}/api/{method}"
        logger.debug("POST %s %s", url, _mask_token(form))
        try:
            resp = await asyncio.to_thread(self._session.post, url, data=form)
        except requests.RequestException as e:
            raise IntegrationError(f"Request to {url} failed: {e}") from e
        logger.debug("Response %s", resp.text)

        body = _handle_response(resp)
        result = body.get("result")
        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, list):
            raise ParseError(f"Cannot parse {body}")
        return data

    def _task_search_form(self, constraint: str, task_ids: list[str]) -> list[tuple[str, str]]:
        form = [("api.token", self._api_token)]
        form += [(f"constraints[{constraint}][{i}]", self.clean_id(task_id)) for i, task_id in enumerate(task_ids)]
        return form + TASK_SEARCH_OPTIONS

    # --- Users ---

    async def get_users_by_phids(self, user_phids: list[str]) -> list[User]:
        form = [("api.token", self._api_token)]
        form += [(f"constraints[phids][{i}]", phid) for i, phid in enumerate(user_phids)]
        data = await self._search("user.search", form)
        return [parse_user(item) for item in data]

    async def get_user_by_phid(self, user_phid: str) -> User | None:
        users = await self.get_users_by_phids([user_phid])
        return users[0] if users else None

    # --- Tasks ---

    async def get_tasks_by_ids(self, task_ids: list[str]) -> list[Task]:
        data = await self._search("maniphest.search", self._task_search_form("ids", task_ids))
        return [parse_task(item) for item in data]

    async def get_task_by_id(self, task_id: str) -> Task | None:
        tasks = await self.get_tasks_by_ids([task_id])
        return tasks[0] if tasks else None

    async def get_task_family(self, root_task_id: str) -> TaskFamily | None:
        """Fetch a task together with all of its descendants."""
        parent_task = await self.get_task_by_id(root_task_id)
        if parent_task is None:
            return None
        children = await self.get_child_tasks([root_task_id])
        return TaskFamily(parent_task=parent_task, children=children)

    async def get_child_tasks(self, parent_task_ids: list[str]) -> list[TaskFamily]:
        """Fetch the subtasks of ``parent_task_ids`` and, recursively, their subtasks.

        Children of several parents come back as one flat list; which parent a child
        belongs to is not tracked. Sibling subtrees are fetched concurrently and all of
        them run to completion. If any fail, the whole call fails with every failure
        message joined by newlines.
        """
        if not parent_task_ids:
            raise ValidationError("Parent ids cannot be empty")

        data = await self._search("maniphest.search", self._task_search_form("parentIDs", parent_task_ids))
        tasks = [parse_task(item) for item in data]

        results = await asyncio.gather(*(self._fetch_family(task) for task in tasks), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise FetchSubTasksError("\n".join(str(f) for f in failures))
        return results

    async def _fetch_family(self, task: Task) -> TaskFamily:
        try:
            children = await self.get_child_tasks([task.id])
        except PhabError as e:
            raise FetchSubTasksError(f"Could not fetch sub tasks with parent id {task.id}, err: {e}") from e
        return TaskFamily(parent_task=task, children=children)
