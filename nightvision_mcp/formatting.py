"""
================================================================================
Output Formatting for NightVision Results
================================================================================

Every tool can return its result in one of three encodings:

    - json:  pretty-printed passthrough of the API/CLI payload
    - text:  one labeled block per item
    - table: fixed-column ASCII table sized to the widest cell per column

Paginated API responses have the shape {"count": N, "results": [...]}. When
`count` is larger than the page, text and table output end with a note on
how to fetch more.

LICENSE: MIT
================================================================================
"""

import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

NOT_AVAILABLE = "N/A"


def to_json(data: Any) -> str:
    """Pretty-print a payload as JSON"""
    return json.dumps(data, indent=2)


def cell(value: Any) -> str:
    """Render a single value for text/table output, using N/A for blanks"""
    if value is None or value == "":
        return NOT_AVAILABLE
    return str(value)


def nested(item: Dict[str, Any], key: str, field: str = "name") -> Any:
    """Read item[key][field] when item[key] is an object (e.g. target.name)"""
    value = item.get(key)
    if isinstance(value, dict):
        return value.get(field)
    return None


def yes_no(value: Any) -> str:
    return "Yes" if value else "No"


def format_as_table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """
    Format rows as an ASCII table.

    Each column is as wide as the longest string among its header and all of
    its cells. The output has exactly len(rows) + 2 lines: header, separator
    and one line per row.

    Args:
        headers: Column headers
        rows: Data rows, one value per header

    Returns:
        Table string, or "No data to display" for empty input
    """
    if not headers or not rows:
        return "No data to display"

    str_rows = [["" if value is None else str(value) for value in row] for row in rows]

    widths = []
    for i, header in enumerate(headers):
        column = [row[i] for row in str_rows if i < len(row)]
        widths.append(max([len(header)] + [len(value) for value in column]))

    def render(values: Sequence[str]) -> str:
        padded = [(values[i] if i < len(values) else "").ljust(width) for i, width in enumerate(widths)]
        return " | ".join(padded)

    lines = [render(list(headers)), "-+-".join("-" * width for width in widths)]
    lines.extend(render(row) for row in str_rows)
    return "\n".join(lines)


def format_key_values(pairs: Sequence[Tuple[str, Any]]) -> str:
    """Render (label, value) pairs as "Label: value" lines"""
    return "\n".join(f"{label}: {cell(value)}" for label, value in pairs)


def pagination_note(response: Dict[str, Any], noun: str, hint: str) -> str:
    """Return the "Showing X of Y" note, or an empty string when nothing is hidden"""
    results = response.get("results") or []
    count = response.get("count") or 0
    if isinstance(count, int) and count > len(results):
        return f"Note: Showing {len(results)} of {count} total {noun}. {hint}\n"
    return ""


class PaginatedFormatter:
    """
    Formatter for one kind of paginated result.

    Args:
        title: Heading for text output, e.g. "Scan Vulnerabilities"
        noun: Plural noun used in the pagination note
        hint: How to fetch more pages
        empty_message: Returned when the response has no results list
        text_block: Renders one item (and its 1-based index) as text lines
        headers: Table headers
        table_row: Renders one item (and its 1-based index) as a table row
    """

    def __init__(
        self,
        title: str,
        noun: str,
        hint: str,
        empty_message: str,
        text_block: Callable[[int, Dict[str, Any]], List[str]],
        headers: Sequence[str],
        table_row: Callable[[int, Dict[str, Any]], List[str]],
    ):
        self.title = title
        self.noun = noun
        self.hint = hint
        self.empty_message = empty_message
        self.text_block = text_block
        self.headers = headers
        self.table_row = table_row

    def _results(self, response: Any) -> Optional[List[Dict[str, Any]]]:
        if not isinstance(response, dict) or not isinstance(response.get("results"), list):
            return None
        return response["results"]

    def as_text(self, response: Any) -> str:
        results = self._results(response)
        if results is None:
            return self.empty_message

        output = f"{self.title} ({len(results)}):\n\n"
        for index, item in enumerate(results, start=1):
            output += "\n".join(self.text_block(index, item)) + "\n\n"
        return output + pagination_note(response, self.noun, self.hint)

    def as_table(self, response: Any) -> str:
        results = self._results(response)
        if results is None:
            return self.empty_message

        rows = [self.table_row(index, item) for index, item in enumerate(results, start=1)]
        output = format_as_table(self.headers, rows)
        note = pagination_note(response, self.noun, self.hint)
        if note:
            output += "\n" + note
        return output

    def render(self, response: Any, fmt: str) -> str:
        if fmt == "text":
            return self.as_text(response)
        if fmt == "table":
            return self.as_table(response)
        return to_json(response)


# ============================================================================
# RESULT FORMATTERS
# ============================================================================

CHECKS_FORMATTER = PaginatedFormatter(
    title="Scan Vulnerabilities",
    noun="vulnerabilities",
    hint="Use 'page' and 'page_size' to see more.",
    empty_message="No vulnerabilities found or invalid response format.",
    text_block=lambda i, check: [
        f"Vulnerability {i}: {check.get('check_kind') or 'Unknown'}",
        f"ID: {cell(check.get('id'))}",
        f"Severity: {cell(check.get('severity'))}",
        f"Status: {cell(check.get('status'))}",
        f"Path: {cell(check.get('path'))}",
        f"Created: {cell(check.get('created'))}",
    ],
    headers=["#", "Kind", "Severity", "Status", "Path", "Created"],
    table_row=lambda i, check: [
        str(i),
        cell(check.get("check_kind")),
        cell(check.get("severity")),
        cell(check.get("status")),
        cell(check.get("path")),
        cell(check.get("created")),
    ],
)

PATHS_FORMATTER = PaginatedFormatter(
    title="Scan Checked Paths",
    noun="paths",
    hint="Use 'page' and 'page_size' parameters for pagination.",
    empty_message="No paths found or invalid response format.",
    text_block=lambda i, path: [
        f"Path {i}: {cell(path.get('request_url'))}",
        f"Method: {cell(path.get('request_method'))}",
        f"Status Code: {cell(path.get('response_status_code'))}",
        f"Date: {cell(path.get('added_date'))}",
        f"Completed: {yes_no(path.get('completed'))}",
    ],
    headers=["#", "Method", "URL", "Status", "Completed", "Date"],
    table_row=lambda i, path: [
        str(i),
        cell(path.get("request_method")),
        cell(path.get("request_url")),
        cell(path.get("response_status_code")),
        yes_no(path.get("completed")),
        cell(path.get("added_date")),
    ],
)

SCANS_FORMATTER = PaginatedFormatter(
    title="Scans",
    noun="scans",
    hint="Use 'limit' to see more.",
    empty_message="No scans found or invalid response format.",
    text_block=lambda i, scan: [
        f"Scan {i}: {cell(scan.get('id'))}",
        f"Target: {cell(nested(scan, 'target'))}",
        f"Status: {cell(scan.get('status'))}",
        f"Created: {cell(scan.get('created'))}",
        f"Project: {cell(nested(scan, 'project'))}",
    ],
    headers=["ID", "Target", "Status", "Created", "Project"],
    table_row=lambda i, scan: [
        cell(scan.get("id")),
        cell(nested(scan, "target")),
        cell(scan.get("status")),
        cell(scan.get("created")),
        cell(nested(scan, "project")),
    ],
)


def _short_description(template: Dict[str, Any]) -> str:
    description = template.get("description") or ""
    if len(description) > 30:
        return description[:30] + "..."
    return cell(description)


TEMPLATES_FORMATTER = PaginatedFormatter(
    title="Nuclei Templates",
    noun="templates",
    hint="Use 'limit' and 'offset' to see more.",
    empty_message="No nuclei templates found.",
    text_block=lambda i, template: [
        f"{cell(template.get('name'))} (ID: {cell(template.get('id'))})",
        f"  Project: {cell(nested(template, 'project'))}",
        f"  Description: {cell(template.get('description'))}",
        f"  Created: {cell(template.get('created'))}",
    ],
    headers=["ID", "Name", "Description", "Project", "Created"],
    table_row=lambda i, template: [
        cell(template.get("id")),
        cell(template.get("name")),
        _short_description(template),
        cell(nested(template, "project")),
        cell(template.get("created")),
    ],
)

PROJECTS_FORMATTER = PaginatedFormatter(
    title="Projects",
    noun="projects",
    hint="Use the NightVision web console to browse the rest.",
    empty_message="No projects found.",
    text_block=lambda i, project: [
        f"{cell(project.get('name'))} (ID: {cell(project.get('id'))}) - {project.get('targets_count') or 0} targets",
    ],
    headers=["ID", "Name", "Targets", "Created"],
    table_row=lambda i, project: [
        cell(project.get("id")),
        cell(project.get("name")),
        str(project.get("targets_count") or 0),
        cell(project.get("created_at")),
    ],
)
