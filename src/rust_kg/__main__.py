"""Dispatcher for ``python -m rust_kg <subcommand> [args…]``.

Allows rust-kg to be invoked without relying on the console scripts, as
long as the package is installed in the active Python environment.

Subcommands
-----------
build   Build the knowledge graph (cache-aware) into SQLite
query   Run a structural query
viz     Render the graph as HTML or DOT
mcp     Start the MCP server
"""

import sys

_COMMANDS: dict[str, str] = {
    "build": "rust_kg.build_rustkg",
    "query": "rust_kg.rustkg_query",
    "viz": "rust_kg.rustkg_viz",
    "mcp": "rust_kg.mcp_server",
}

_HELP = """\
usage: python -m rust_kg <subcommand> [options]

subcommands:
  build   Build the knowledge graph (cache-aware) into SQLite
  query   Run a structural query
  viz     Render the graph as HTML or DOT
  mcp     Start the MCP server

Run  python -m rust_kg <subcommand> --help  for per-command options.
"""


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(_HELP, end="")
        sys.exit(0)

    subcommand = sys.argv[1]
    if subcommand not in _COMMANDS:
        print(f"error: unknown subcommand '{subcommand}'\n", file=sys.stderr)
        print(_HELP, end="", file=sys.stderr)
        sys.exit(1)

    # the target module's argparse sees only its own arguments
    sys.argv = [f"python -m rust_kg {subcommand}", *sys.argv[2:]]

    import importlib

    mod = importlib.import_module(_COMMANDS[subcommand])
    mod.main()


if __name__ == "__main__":
    main()
