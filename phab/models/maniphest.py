from pydantic import BaseModel, ConfigDict, TypeAdapter


class Board(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    phid: str
    name: str


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str  # numeric id without the "T" prefix
    task_type: str
    phid: str
    name: str
    description: str
    author_phid: str
    assigned_phid: str | None = None
    status: str
    priority: str
    point: int | None = None
    project_phids: list[str] = []
    board: Board | None = None
    created_at: int
    updated_at: int


class TaskFamily(BaseModel):
    model_config = ConfigDict(frozen=True)

    parent_task: Task
    children: list["TaskFamily"] = []

    @staticmethod
    def json_string(task_families: list["TaskFamily"]) -> str:
        return _TASK_FAMILIES.dump_json(task_families).decode()


_TASK_FAMILIES = TypeAdapter(list[TaskFamily])
