import json

import pytest

from phab.exceptions import ParseError
from phab.models.maniphest import Board, TaskFamily
from phab.services.phabricator import guess_board_from_projects, parse_task, parse_user
from conftest import BOARDS, MANIPHEST_TASK, USER_JSON, make_task_json


class TestParseTask:
    def test_maps_fields(self):
        task = parse_task(MANIPHEST_TASK)
        assert task.id == "1234"
        assert task.task_type == "TASK"
        assert task.phid == "PHID-TASK-1234"
        assert task.name == "Ship phab"
        assert task.description == "Description of T1234"
        assert task.author_phid == "PHID-USER-author"
        assert task.assigned_phid == "PHID-USER-owner"
        assert task.status == "open"
        assert task.priority == "Normal"
        assert task.point == 3
        assert task.project_phids == ["PHID-PROJ-other", "PHID-PROJ-sprint"]
        assert task.board == Board(id=42, phid="PHID-PCOL-doing", name="Doing")
        assert task.created_at == 1577836800
        assert task.updated_at == 1577923200

    def test_unassigned_without_points(self):
        task = parse_task(make_task_json(5))
        assert task.assigned_phid is None
        assert task.point is None
        assert task.board is None

    @pytest.mark.parametrize("points, expected", [(5, 5), (2.0, 2), ("8", 8), (1.5, None), ("lots", None)])
    def test_points(self, points, expected):
        assert parse_task(make_task_json(5, points=points)).point == expected

    def test_id_must_be_numeric(self):
        with pytest.raises(ParseError):
            parse_task({**make_task_json(5), "id": "T5"})

    def test_project_phids_must_be_array(self):
        item = make_task_json(5)
        item["attachments"]["projects"]["projectPHIDs"] = "PHID-PROJ-x"
        with pytest.raises(ParseError, match="Project phids is not an array"):
            parse_task(item)

    def test_missing_attachments(self):
        item = make_task_json(5)
        del item["attachments"]
        with pytest.raises(ParseError):
            parse_task(item)

    def test_wrong_field_type(self):
        item = make_task_json(5)
        item["fields"]["name"] = ["not", "a", "string"]
        with pytest.raises(ParseError):
            parse_task(item)


class TestParseUser:
    def test_maps_fields(self):
        user = parse_user(USER_JSON)
        assert user.id == "7"
        assert user.phid == "PHID-USER-owner"
        assert user.username == "alice"
        assert user.name == "Alice Liddell"
        assert user.created_at == 1500000000
        assert user.updated_at == 1600000000

    def test_missing_fields(self):
        with pytest.raises(ParseError):
            parse_user({"id": 7, "phid": "PHID-USER-owner"})


class TestGuessBoardFromProjects:
    def test_first_column_of_matching_project(self):
        board = guess_board_from_projects(BOARDS, ["PHID-PROJ-a", "PHID-PROJ-sprint", "PHID-PROJ-b"])
        assert board == Board(id=42, phid="PHID-PCOL-doing", name="Doing")

    def test_first_matching_project_wins(self):
        boards = {
            **BOARDS,
            "PHID-PROJ-ops": {"columns": [{"id": 1, "phid": "PHID-PCOL-ops", "name": "Ops Backlog"}]},
        }
        board = guess_board_from_projects(boards, ["PHID-PROJ-ops", "PHID-PROJ-sprint"])
        assert board.name == "Ops Backlog"

    def test_no_match(self):
        assert guess_board_from_projects(BOARDS, ["PHID-PROJ-a", "PHID-PROJ-b"]) is None

    def test_empty_boards_list(self):
        assert guess_board_from_projects([], ["PHID-PROJ-sprint"]) is None

    def test_project_without_columns(self):
        assert guess_board_from_projects({"PHID-PROJ-x": {"columns": []}}, ["PHID-PROJ-x"]) is None


class TestTaskFamilyJson:
    def test_json_string(self):
        root = parse_task(make_task_json(1))
        child = parse_task(make_task_json(2))
        family = TaskFamily(parent_task=root, children=[TaskFamily(parent_task=child)])

        data = json.loads(TaskFamily.json_string([family]))

        assert isinstance(data, list)
        assert data[0]["parent_task"]["id"] == "1"
        assert data[0]["children"][0]["parent_task"]["id"] == "2"
        assert data[0]["children"][0]["children"] == []

    def test_empty(self):
        assert TaskFamily.json_string([]) == "[]"
