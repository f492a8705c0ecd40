"""
report.py - Audit sink for ledger actions and reconciliation rows.

Ledgers write to a Report and never read from it. Rows are kept as plain
dicts and rendered as box tables on demand.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from .core import normalize_decimal


def _format_cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, Decimal):
        return normalize_decimal(value)
    return str(value)


def render_table(rows: List[Mapping[str, Any]], title: Optional[str] = None) -> str:
    """
    Render rows as a box-drawn table.

    Columns are the union of all row keys in first-seen order; missing
    cells render as "-".
    """
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    if not columns:
        return ""

    cells = [[_format_cell(row.get(col)) for col in columns] for row in rows]
    widths = [
        max([len(col)] + [len(line[i]) for line in cells])
        for i, col in enumerate(columns)
    ]

    def line(left: str, mid: str, right: str) -> str:
        return left + mid.join("─" * (w + 2) for w in widths) + right

    def content(values: List[str]) -> str:
        padded = (f" {v}{' ' * (w - len(v))} " for v, w in zip(values, widths))
        return "│" + "│".join(padded) + "│"

    lines = []
    if title:
        lines.append(f" {title}")
    lines.append(line("┌", "┬", "┐"))
    lines.append(content(columns))
    lines.append(line("├", "┼", "┤"))
    for values in cells:
        lines.append(content(values))
    lines.append(line("└", "┴", "┘"))
    return "\n".join(lines)


class Report:
    """
    Write-only collector of audit lines and reconciliation rows.

    Example:
        report = Report()
        vault = ProtocolVault(report)
        vault.create_vault("alice", Decimal("100"))
        vault.reconcile("opening")
        report.print_report()
    """

    def __init__(self):
        self.actions: List[Dict[str, str]] = []
        self.reconciliation: List[Dict[str, Any]] = []

    def record_action(self, description: str) -> None:
        """Append a free-text audit line."""
        self.actions.append({'action': description})

    def record_reconciliation_row(self, row: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        """Append a row of named fields. Accepts a mapping, keywords, or both."""
        merged = dict(row) if row else {}
        merged.update(fields)
        self.reconciliation.append(merged)

    def render(self) -> str:
        """Render both tables as text."""
        parts = []
        if self.actions:
            parts.append(render_table(self.actions, "Actions"))
        if self.reconciliation:
            parts.append(render_table(self.reconciliation, "Reconciliation"))
        return "\n\n".join(parts)

    def print_report(self) -> None:
        print(self.render())

    def clear(self) -> None:
        self.actions.clear()
        self.reconciliation.clear()
