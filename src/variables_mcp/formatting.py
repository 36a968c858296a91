"""Shared formatting utilities for MCP tool responses.

Markdown renderings for humans; the JSON shapes are built in tools.py.
"""

import json
from typing import Any

from .engine import Variable
from .engine.service import CategoryInfo

# =============================================================================
# Markdown Formatting Utilities
# =============================================================================


def _format_value(value: Any, limit: int = 80) -> str:
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return f"`{text}`"


def format_variable_list_markdown(
    variables: list[Variable], filters: dict[str, Any] | None = None
) -> str:
    """Format variable list as markdown, grouped by category.

    Args:
        variables: Variables ordered by category then key
        filters: Filters used for the listing (for display)
    """
    active_filters = {name: value for name, value in (filters or {}).items() if value}
    filter_msg = ", ".join(f"{name}={value}" for name, value in active_filters.items())

    if not variables:
        return f"No variables found{f' ({filter_msg})' if filter_msg else ''}"

    lines = [f"## Variables ({len(variables)})"]
    if filter_msg:
        lines.append(f"**Filtered by**: {filter_msg}")

    current_category: str | None = None
    for variable in variables:
        if variable.category != current_category:
            current_category = variable.category
            lines.append("")
            lines.append(f"### {current_category}")

        line = f"- **{variable.key}** ({variable.type.value})"
        if variable.type.value == "static":
            line += f": {_format_value(variable.decoded_value)}"
        if not variable.is_active:
            line += " [inactive]"
        if variable.last_error:
            line += " [error]"
        lines.append(line)

    return "\n".join(lines)


def format_variable_info_markdown(variable: Variable) -> str:
    """Format one variable record as markdown."""
    lines = [
        f"# Variable: {variable.key}",
        "",
    ]
    if variable.description:
        lines.extend([variable.description, ""])

    lines.extend(
        [
            "## Configuration",
            f"- **Type**: {variable.type.value}",
            f"- **Category**: {variable.category}",
            f"- **Active**: {'yes' if variable.is_active else 'no'}",
            f"- **Cache TTL**: {f'{variable.cache_ttl}s' if variable.cache_ttl else 'forever'}",
            f"- **Refresh Strategy**: {variable.refresh_strategy.value}",
        ]
    )

    if variable.value is not None:
        lines.append(f"- **Stored Value**: {_format_value(variable.decoded_value)}")

    if variable.config:
        lines.append("")
        lines.append("## Strategy Config")
        lines.append("```json")
        lines.append(json.dumps(variable.config, indent=2, ensure_ascii=False))
        lines.append("```")

    lines.append("")
    lines.append("## Status")
    refreshed = variable.last_refreshed_at
    lines.append(f"- **Last Refreshed**: {refreshed.isoformat() if refreshed else 'never'}")
    if variable.last_error:
        lines.append(f"- **Last Error**: {variable.last_error}")
    if variable.updated_by:
        lines.append(f"- **Updated By**: {variable.updated_by}")

    return "\n".join(lines)


def format_namespace_markdown(variables: dict[str, Any], cached: bool) -> str:
    """Format a resolved namespace as markdown."""
    if not variables:
        return "No active variables"

    source = "cache" if cached else "fresh resolution"
    lines = [f"## Resolved Variables ({len(variables)}, from {source})", ""]
    for key in sorted(variables):
        lines.append(f"- **{key}**: {_format_value(variables[key])}")
    return "\n".join(lines)


def format_category_list_markdown(categories: list[CategoryInfo]) -> str:
    """Format categories with their variable counts."""
    if not categories:
        return "No categories configured"

    lines = [f"## Categories ({len(categories)})", ""]
    for category in categories:
        line = f"- {category.icon} **{category.name}** (`{category.key}`): {category.count}"
        if category.default_ttl:
            line += f" - default TTL {category.default_ttl}s"
        lines.append(line)
    return "\n".join(lines)


# =============================================================================
# Error Formatting Utilities
# =============================================================================


def format_variable_not_found_error(key: str, format_type: str = "json") -> dict[str, Any] | str:
    """Format variable not found error with guidance."""
    message = f"Variable '{key}' not found. Use list_variables() to see stored variables."
    if format_type == "markdown":
        return f"**Error**: {message}"
    return {"status": "failure", "error": message, "key": key}
