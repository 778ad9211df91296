import json
import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from slugify import slugify

from phab.exceptions import ParseError, StorageError, WatchlistNotFoundError
from phab.models.maniphest import Task
from phab.models.watchlist import Watchlist

logger = logging.getLogger(__name__)

WATCHLISTS_TABLE = "watchlists"


class WatchlistStore:
    """Keeps watchlists in a local JSON file, keyed by the slug of their name.

    The file holds one object per table (only ``watchlists`` for now). It is loaded on
    construction and rewritten in full after every change. Not safe for concurrent writers.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._db: dict[str, dict[str, Watchlist]] = {}
        self.reload()

    def _watchlist_table(self) -> dict[str, Watchlist]:
        return self._db.setdefault(WATCHLISTS_TABLE, {})

    def reload(self) -> None:
        if not self.path.exists():
            self._db = {WATCHLISTS_TABLE: {}}
            self._persist()
            return

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read watchlist db {self.path}, {e}") from e

        try:
            raw = json.loads(text)
            self._db = {
                table: {key: Watchlist.model_validate(row) for key, row in rows.items()}
                for table, rows in raw.items()
            }
        except (json.JSONDecodeError, AttributeError, PydanticValidationError) as e:
            raise ParseError(f"Cannot parse watchlist db {self.path}: {e}") from e
        self._watchlist_table()

    def _persist(self) -> None:
        content = {
            table: {key: watchlist.model_dump(mode="json") for key, watchlist in rows.items()}
            for table, rows in self._db.items()
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(content, indent=2), encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to write watchlist db {self.path}, {e}") from e
        logger.debug("Wrote %s", self.path)

    def create_watchlist(self, watchlist: Watchlist) -> Watchlist:
        """Store ``watchlist`` under the slug of its name, replacing any watchlist with the same slug."""
        watchlist_id = slugify(watchlist.name)
        stored = watchlist.model_copy(update={"id": watchlist_id})
        self._watchlist_table()[watchlist_id] = stored
        self._persist()
        return stored

    def add_to_watchlist(self, watchlist_id: str, task: Task) -> None:
        table = self._watchlist_table()
        watchlist = table.get(watchlist_id)
        if watchlist is None:
            raise WatchlistNotFoundError(f"Watchlist {watchlist_id!r} not found")
        table[watchlist_id] = watchlist.model_copy(update={"tasks": [*watchlist.tasks, task]})
        self._persist()

    def get_watchlists(self) -> list[Watchlist]:
        return list(self._watchlist_table().values())

    def get_watchlist_by_id(self, watchlist_id: str) -> Watchlist | None:
        return self._watchlist_table().get(watchlist_id)
