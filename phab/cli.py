"""CLI entrypoint for phab."""

import asyncio

import rich_click as click

from phab.config import get_settings, load_client_config
from phab.exceptions import PhabError
from phab.logging_setup import setup_logging
from phab.models.maniphest import TaskFamily
from phab.models.watchlist import Watchlist
from phab.services.phabricator import PhabricatorClient
from phab.storage import WatchlistStore

NO_BOARD = "NoBoard"


def print_tasks(task_families: list[TaskFamily], indentation_level: int = 0) -> None:
    """Print each task on one line, children indented two spaces per level. Invalid tasks are skipped."""
    indentation = "  " * indentation_level
    for family in task_families:
        task = family.parent_task
        if task.status == "invalid":
            continue
        board_name = task.board.name if task.board else NO_BOARD
        click.echo(
            f"{indentation}[T{task.id} {task.status} - {board_name} point: {task.point or 0}] {task.name}"
        )
        print_tasks(family.children, indentation_level + 1)


def _client() -> PhabricatorClient:
    return PhabricatorClient(load_client_config(get_settings().config_file))


def _store() -> WatchlistStore:
    return WatchlistStore(get_settings().storage_file)


@click.group()
@click.option("--log-level", default=None, help="Log level, overrides PHAB_LOG_LEVEL.")
def phab(log_level: str | None) -> None:
    """Phabricator command line client."""
    setup_logging(log_level or get_settings().log_level)


# --- Tasks ---


@phab.group()
def task() -> None:
    """Task commands."""


@task.command("detail")
@click.argument("task_id")
@click.option("--print-json", is_flag=True, help="Print the task tree as JSON.")
def task_detail(task_id: str, print_json: bool) -> None:
    """View a task and all of its subtasks."""

    async def fetch() -> TaskFamily | None:
        with _client() as client:
            return await client.get_task_family(task_id)

    try:
        family = asyncio.run(fetch())
    except PhabError as e:
        raise click.ClickException(str(e)) from e
    if family is None:
        raise click.ClickException(f"Could not find task {task_id}")

    if print_json:
        click.echo(TaskFamily.json_string([family]))
    else:
        print_tasks([family])


# --- Watchlists ---


@phab.group()
def watchlist() -> None:
    """Locally stored watchlists of task snapshots."""


@watchlist.command("create")
@click.argument("name")
def watchlist_create(name: str) -> None:
    """Create a watchlist, replacing any watchlist with the same slug."""
    try:
        created = _store().create_watchlist(Watchlist(name=name))
    except PhabError as e:
        raise click.ClickException(str(e)) from e
    click.echo(created.id)


@watchlist.command("add")
@click.argument("watchlist_id")
@click.argument("task_id")
def watchlist_add(watchlist_id: str, task_id: str) -> None:
    """Snapshot a task from Phabricator into a watchlist."""

    async def fetch():
        with _client() as client:
            return await client.get_task_by_id(task_id)

    try:
        store = _store()
        if store.get_watchlist_by_id(watchlist_id) is None:
            raise click.ClickException(f"Could not find watchlist {watchlist_id}")
        found = asyncio.run(fetch())
        if found is None:
            raise click.ClickException(f"Could not find task {task_id}")
        store.add_to_watchlist(watchlist_id, found)
    except PhabError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Added T{found.id} to {watchlist_id}")


@watchlist.command("list")
def watchlist_list() -> None:
    """List stored watchlists."""
    try:
        watchlists = _store().get_watchlists()
    except PhabError as e:
        raise click.ClickException(str(e)) from e
    for item in watchlists:
        click.echo(f"{item.id}\t{item.name} ({len(item.tasks)} tasks)")


@watchlist.command("show")
@click.argument("watchlist_id")
@click.option("--print-json", is_flag=True, help="Print the watchlist as JSON.")
def watchlist_show(watchlist_id: str, print_json: bool) -> None:
    """Show the tasks in a watchlist."""
    try:
        found = _store().get_watchlist_by_id(watchlist_id)
    except PhabError as e:
        raise click.ClickException(str(e)) from e
    if found is None:
        raise click.ClickException(f"Could not find watchlist {watchlist_id}")

    if print_json:
        click.echo(found.model_dump_json())
    else:
        print_tasks([TaskFamily(parent_task=t) for t in found.tasks])


def main() -> None:
    phab(prog_name="phab")


if __name__ == "__main__":
    main()
