from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Iterable, Sequence


@dataclass
class ReportDoc:
    title: str
    _lines: list[str] = field(default_factory=list)

    def line(self, value: str = "") -> None:
        self._lines.append(value)

    def section(self, title: str) -> None:
        self._lines.append(f"{title}:")

    def header(self, level: int, title: str) -> None:
        if level < 1 or level > 6:
            raise ValueError(f"report header level out of range: {level}")
        self._lines.append(f"{'#' * level} {title}")

    def codeblock(self, content: str | object, *, language: str = "") -> None:
        if isinstance(content, str):
            rendered = content
        else:
            rendered = json.dumps(content, indent=2, sort_keys=False)
        fence = f"```{language}" if language else "```"
        self._lines.append(fence)
        self._lines.extend(rendered.splitlines() or [""])
        self._lines.append("```")

    def table(self, headers: Sequence[str], rows: Iterable[Sequence[object]]) -> None:
        header_cells = [str(entry) for entry in headers]
        if not header_cells:
            raise ValueError("report table requires at least one header")
        self._lines.append("| " + " | ".join(header_cells) + " |")
        self._lines.append("| " + " | ".join("---" for _ in header_cells) + " |")
        for row in rows:
            row_cells = [str(entry).replace("|", "\\|") for entry in row]
            if len(row_cells) != len(header_cells):
                raise ValueError(
                    f"report table row length mismatch: expected {len(header_cells)}, "
                    f"got {len(row_cells)}"
                )
            self._lines.append("| " + " | ".join(row_cells) + " |")

    def emit(self) -> str:
        return "\n".join([f"# {self.title}", "", *self._lines]) + "\n"
