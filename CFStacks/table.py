"""
Console tables for stack listings, change set previews and live events.
"""

from datetime import datetime
from typing import Any, List, Optional, Sequence

from rich.console import Console
from rich.live import Live
from rich.table import Table


def cell(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def create(columns: Sequence[str], rows: Sequence[Sequence[Any]] = (), title: Optional[str] = None) -> Table:
    table = Table(title=title, show_lines=False, expand=False)
    for column in columns:
        table.add_column(column, overflow='ellipsis')
    for row in rows:
        table.add_row(*[cell(value) for value in row])
    return table


def print_table(console: Console, columns: Sequence[str], rows: Sequence[Sequence[Any]], title: Optional[str] = None):
    console.print(create(columns, rows, title=title))


class LiveTable:
    """
    Table that is re-rendered as rows arrive.

    Usage:
        with LiveTable(console, ['Time', 'Status']) as table:
            table.add_row([event['Timestamp'], event['ResourceStatus']])
    """

    def __init__(self, console: Console, columns: Sequence[str]):
        self.console = console
        self.table = create(columns)
        self.rows: List[List[str]] = []
        self._live = Live(self.table, console=console, auto_refresh=False)

    def add_row(self, row: Sequence[Any]):
        values = [cell(value) for value in row]
        self.rows.append(values)
        self.table.add_row(*values)
        self._live.refresh()

    def __enter__(self):
        self._live.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._live.stop()
        return False
