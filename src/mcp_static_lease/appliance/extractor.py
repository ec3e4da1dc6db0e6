"""DOM extractor for the appliance's HTML tables.

Rows are matched on one identity column. Matching is case-insensitive and
whitespace-trimmed on both sides because the appliance renders values
inconsistently. A table that does not exist yet, or is empty, is reported
as found=False rather than an error.

Script arguments are passed through page.evaluate, never spliced into the
script source.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from .steps import Step, StepContext

logger = logging.getLogger(__name__)

FIND_ROW_JS = """({tableId, column, target}) => {
    const table = document.getElementById(tableId);
    if (!table) return {found: false};
    const want = String(target).trim().toLowerCase();
    for (const row of Array.from(table.querySelectorAll('tr'))) {
        const cell = row.cells[column];
        if (cell && cell.innerText.trim().toLowerCase() === want) {
            const cells = Array.from(row.cells);
            return {
                found: true,
                cells: cells.map(c => c.innerText.trim()),
                checked: cells.map(c => {
                    const box = c.querySelector('input[type="checkbox"]');
                    return box ? box.checked : null;
                }),
            };
        }
    }
    return {found: false};
}"""

REMOVE_ROW_JS = """({tableId, column, target}) => {
    const table = document.getElementById(tableId);
    if (!table) return false;
    const want = String(target).trim().toLowerCase();
    for (const row of Array.from(table.querySelectorAll('tr'))) {
        const cell = row.cells[column];
        if (cell && cell.innerText.trim().toLowerCase() === want) {
            const removeBtn = row.querySelector('input[value="Remove"]');
            if (removeBtn) {
                removeBtn.dispatchEvent(new MouseEvent('click', {bubbles: true, cancelable: true}));
                return true;
            }
        }
    }
    return false;
}"""

ROW_COUNT_JS = """(tableId) => {
    const table = document.getElementById(tableId);
    return table ? table.querySelectorAll('tr').length : -1;
}"""


def identity_matches(cell_text: Optional[str], target: str) -> bool:
    """The row-matching rule the page scripts apply."""
    if cell_text is None:
        return False
    return cell_text.strip().lower() == target.strip().lower()


@dataclass
class RowMatch:
    """Result of a findRow lookup."""
    found: bool
    cells: list[str] = field(default_factory=list)
    checked: list[Optional[bool]] = field(default_factory=list)

    @classmethod
    def from_result(cls, result: Any) -> "RowMatch":
        if not isinstance(result, dict) or not result.get("found"):
            return cls(found=False)
        return cls(
            found=True,
            cells=[str(c) for c in result.get("cells") or []],
            checked=list(result.get("checked") or []),
        )

    def text(self, column: int) -> str:
        if column < len(self.cells):
            return self.cells[column]
        return ""

    def is_checked(self, column: int) -> bool:
        if column < len(self.checked):
            return bool(self.checked[column])
        return False


def row_query(table_id: str, column: int, target: str) -> dict:
    return {"tableId": table_id, "column": column, "target": target}


async def find_row(ctx: StepContext, table_id: str, column: int, target: str) -> RowMatch:
    result = await ctx.page.evaluate(FIND_ROW_JS, row_query(table_id, column, target))
    return RowMatch.from_result(result)


async def remove_row(ctx: StepContext, table_id: str, column: int, target: str) -> bool:
    """Dispatch the row-scoped Remove control. Returns whether a row was hit."""
    return bool(await ctx.page.evaluate(REMOVE_ROW_JS, row_query(table_id, column, target)))


@dataclass(frozen=True)
class FindRow(Step):
    table_id: str
    column: int
    target: str
    key: str = "row"

    async def run(self, ctx: StepContext) -> None:
        ctx.results[self.key] = await find_row(ctx, self.table_id, self.column, self.target)

    def describe(self) -> str:
        return f"FindRow({self.table_id}[{self.column}] == {self.target})"


@dataclass(frozen=True)
class RemoveRow(Step):
    table_id: str
    column: int
    target: str
    key: str = "removed"

    async def run(self, ctx: StepContext) -> None:
        ctx.results[self.key] = await remove_row(ctx, self.table_id, self.column, self.target)

    def describe(self) -> str:
        return f"RemoveRow({self.table_id}[{self.column}] == {self.target})"


@dataclass(frozen=True)
class WaitTableSettled(Step):
    """Wait until a table's row count stops changing.

    The fixed floor always elapses first; the table is populated
    asynchronously after navigation completes. A table that stays absent
    counts as settled; the row steps then report the missing row.
    """
    table_id: str
    floor: float = 0.5
    poll: Optional[float] = None
    max_wait: float = 5.0

    async def run(self, ctx: StepContext) -> None:
        if self.floor:
            await asyncio.sleep(self.floor)
        interval = self.poll if self.poll is not None else self.floor / 5
        deadline = time.monotonic() + self.max_wait
        previous = await ctx.page.evaluate(ROW_COUNT_JS, self.table_id)
        while True:
            await asyncio.sleep(interval)
            count = await ctx.page.evaluate(ROW_COUNT_JS, self.table_id)
            if count == previous:
                if count < 0:
                    logger.debug(f"Table {self.table_id} absent after settling")
                else:
                    logger.debug(f"Table {self.table_id} settled at {count} rows")
                return
            if time.monotonic() > deadline:
                raise TimeoutError(
                    f"table {self.table_id} did not settle within {self.max_wait}s"
                )
            previous = count

    def describe(self) -> str:
        return f"WaitTableSettled({self.table_id}, floor={self.floor:.2f}s)"
