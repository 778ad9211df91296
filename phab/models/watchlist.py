from pydantic import BaseModel, ConfigDict

from phab.models.maniphest import Task


class Watchlist(BaseModel):
    """A named collection of task snapshots. ``id`` stays None until the watchlist is stored."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str
    tasks: list[Task] = []
