"""Console entry point: ``variables-mcp`` or ``python -m variables_mcp``."""

from .server import main as run_server


def main() -> None:
    """Register the tools on the shared FastMCP instance, then serve over stdio."""
    from . import tools  # noqa: F401 - registers @mcp.tool() handlers on import

    run_server()


if __name__ == "__main__":
    main()
