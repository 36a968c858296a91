"""MCP tool implementations for variable resolution and management.

Following official MCP Python SDK patterns:
- Tool functions decorated with @mcp.tool()
- Flat parameter signatures with Annotated types for validation
- Async functions for all tools
- Clear docstrings (become tool descriptions)

Engine errors never escape a tool: they are returned as
{"status": "failure", "error": ...}.
"""

from typing import Annotated, Any, Literal

from mcp.types import ToolAnnotations
from pydantic import Field, ValidationError

from .context import AppContextType
from .engine import (
    RefreshStrategy,
    VariableError,
    VariableInput,
    VariableNotFoundError,
    VariableType,
)
from .formatting import (
    format_category_list_markdown,
    format_namespace_markdown,
    format_variable_info_markdown,
    format_variable_list_markdown,
    format_variable_not_found_error,
)
from .server import mcp

KeyParam = Annotated[
    str,
    Field(description="Variable key, e.g. site.company_name", min_length=1, max_length=255),
]


def _failure(error: Exception | str, **extra: Any) -> dict[str, Any]:
    response: dict[str, Any] = {"status": "failure", "error": str(error)}
    response.update(extra)
    return response


# =============================================================================
# Resolution Tools
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="Resolve Variable",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,  # External variables call HTTP APIs
    )
)
async def resolve_variable(
    key: KeyParam,
    force: Annotated[bool, Field(description="Bypass the cache and re-run the strategy")] = False,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Resolve one variable. Required: key. Optional: force (bypass cache)."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        value = await app_ctx.service.resolve(key, force=force)
    except VariableNotFoundError:
        return format_variable_not_found_error(key)  # type: ignore[return-value]
    except VariableError as e:
        return _failure(e, key=key)

    return {"status": "success", "key": key, "value": value}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Resolve Variables",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def resolve_variables(
    keys: Annotated[
        list[str],
        Field(description="Variable keys to resolve", min_length=1, max_length=500),
    ],
    force: Annotated[bool, Field(description="Bypass the cache")] = False,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Resolve several variables at once. Failed variables map to null. Required: keys."""
    app_ctx = ctx.request_context.lifespan_context

    variables = await app_ctx.service.resolve_many(keys, force=force)
    return {
        "status": "success",
        "variables": variables,
        "missing": [key for key in keys if key not in variables],
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Namespace",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def get_namespace(
    force_refresh: Annotated[
        bool,
        Field(description="Ignore the cached namespace and resolve every variable"),
    ] = False,
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Get all active variables as a flat key -> value map. Optional: force_refresh, format."""
    app_ctx = ctx.request_context.lifespan_context

    namespace = await app_ctx.service.namespace(force_refresh=force_refresh)

    if format == "markdown":
        return format_namespace_markdown(namespace.variables, namespace.cached)
    return namespace.model_dump(mode="json")


@mcp.tool(
    annotations=ToolAnnotations(
        title="Refresh Variable",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def refresh_variable(
    key: KeyParam,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Force-resolve one variable and update its cache. Required: key."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        result = await app_ctx.service.refresh(key)
    except VariableNotFoundError:
        return format_variable_not_found_error(key)  # type: ignore[return-value]
    except VariableError as e:
        return _failure(e, key=key)

    response = result.model_dump(mode="json")
    response["status"] = "success" if result.last_error is None else "degraded"
    return response


@mcp.tool(
    annotations=ToolAnnotations(
        title="Refresh Expired Variables",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def refresh_expired(
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Force-resolve every active variable whose cache TTL has lapsed. No parameters."""
    app_ctx = ctx.request_context.lifespan_context

    attempted = await app_ctx.service.refresh_expired()
    return {"status": "success", "attempted": attempted}


# =============================================================================
# Management Tools
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="Upsert Variable",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def upsert_variable(
    key: KeyParam,
    value: Annotated[
        Any,
        Field(description="Stored value (objects and lists are stored as JSON)"),
    ] = None,
    type: Annotated[  # noqa: A002
        VariableType,
        Field(description="Resolution strategy"),
    ] = VariableType.STATIC,
    category: Annotated[str, Field(description="Category key", max_length=50)] = "custom",
    description: Annotated[str | None, Field(description="Human description")] = None,
    cache_ttl: Annotated[
        int | None,
        Field(description="Cache lifetime in seconds (omit for category default)", ge=1),
    ] = None,
    refresh_strategy: Annotated[
        RefreshStrategy,
        Field(description="Refresh hint (informational)"),
    ] = RefreshStrategy.MANUAL,
    config: Annotated[
        dict[str, Any] | None,
        Field(description="Strategy config (query, url, class/method, transform, ...)"),
    ] = None,
    is_active: Annotated[bool, Field(description="Include in namespace and batches")] = True,
    user: Annotated[str | None, Field(description="Audit reference")] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Create or update a variable by key. Required: key. Optional: value, type, config, ..."""
    app_ctx = ctx.request_context.lifespan_context

    payload: dict[str, Any] = {
        "key": key,
        "value": value,
        "type": type,
        "category": category,
        "description": description,
        "refresh_strategy": refresh_strategy,
        "config": config,
        "is_active": is_active,
    }
    if cache_ttl is not None:
        payload["cache_ttl"] = cache_ttl

    try:
        variable = await app_ctx.service.upsert(VariableInput.model_validate(payload), user=user)
    except (VariableError, ValidationError) as e:
        return _failure(e, key=key)

    return {"status": "success", "variable": variable.model_dump(mode="json")}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Deactivate Variable",
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def deactivate_variable(
    key: KeyParam,
    user: Annotated[str | None, Field(description="Audit reference")] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Deactivate (logically delete) a variable. Required: key."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        await app_ctx.service.deactivate(key, user=user)
    except VariableNotFoundError:
        return format_variable_not_found_error(key)  # type: ignore[return-value]

    return {"status": "success", "key": key, "message": "Variable deactivated"}


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Variables",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def list_variables(
    category: Annotated[str | None, Field(description="Filter by category")] = None,
    type: Annotated[  # noqa: A002
        VariableType | None,
        Field(description="Filter by variable type"),
    ] = None,
    search: Annotated[
        str | None,
        Field(description="Substring match on key or description", max_length=200),
    ] = None,
    active_only: Annotated[bool, Field(description="Hide inactive variables")] = False,
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """List stored variables. Optional: category, type, search, active_only, format."""
    app_ctx = ctx.request_context.lifespan_context

    variables = await app_ctx.service.list_variables(
        category=category, variable_type=type, search=search, active_only=active_only
    )

    if format == "markdown":
        filters = {"category": category, "type": type.value if type else None, "search": search}
        return format_variable_list_markdown(variables, filters)

    return {
        "variables": [variable.model_dump(mode="json") for variable in variables],
        "total": len(variables),
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Variable",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def get_variable(
    key: KeyParam,
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Get a stored variable record (not resolved). Required: key. Optional: format."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        variable = await app_ctx.service.get(key)
    except VariableNotFoundError:
        return format_variable_not_found_error(key, format)

    if format == "markdown":
        return format_variable_info_markdown(variable)
    return variable.model_dump(mode="json")


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Categories",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def list_categories(
    format: Annotated[  # noqa: A002
        Literal["json", "markdown"],
        Field(description="Output format"),
    ] = "json",
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """List variable categories with counts. Optional: format."""
    app_ctx = ctx.request_context.lifespan_context

    categories = await app_ctx.service.categories()

    if format == "markdown":
        return format_category_list_markdown(categories)
    return {"categories": [category.model_dump() for category in categories]}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Test Variable",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def test_variable(
    type: Annotated[  # noqa: A002
        VariableType,
        Field(description="Resolution strategy to test"),
    ],
    value: Annotated[Any, Field(description="Stored value")] = None,
    config: Annotated[dict[str, Any] | None, Field(description="Strategy config")] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Dry-run a variable definition without saving it. Required: type. Optional: value, config."""
    app_ctx = ctx.request_context.lifespan_context

    try:
        result = await app_ctx.service.test(type, value=value, config=config)
    except (VariableError, ValidationError) as e:
        return _failure(e, message="Variable test failed")

    return {"status": "success", "message": "Variable test successful", "result": result}


# =============================================================================
# Cache Tools
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="Clear Cache",
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def clear_cache(
    everything: Annotated[
        bool,
        Field(description="Also drop every cached variable value, not only the aggregates"),
    ] = False,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Clear the resolved-namespace cache. Optional: everything."""
    app_ctx = ctx.request_context.lifespan_context

    await app_ctx.service.clear_cache(everything=everything)
    return {"status": "success", "message": "Cache cleared successfully"}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Cache Info",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def get_cache_info(
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Get namespace cache status (cached, TTL, variable count, backend). No parameters."""
    app_ctx = ctx.request_context.lifespan_context

    info = await app_ctx.service.cache_info()
    return info.model_dump(mode="json")
