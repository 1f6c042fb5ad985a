"""airdeck CLI: run the terminal UI and manage configured servers."""

import argparse
import curses
import logging
import sys

from . import __version__
from .app import App
from .client import create_client
from .config import (
    AIRFLOW_VERSIONS,
    MANAGED_SERVICES,
    AuthConfig,
    ConfigStore,
    RuntimeSettings,
    ServerConfig,
)
from .demo import DEMO_SERVER, DemoClient
from .events import CursesInputSource
from .exceptions import AirdeckError, ConfigError
from .render import CursesRenderer
from .state import AppState, SharedState
from .worker import Worker

logger = logging.getLogger("airdeck")


def _fmt_table(rows: list[list[str]], headers: list[str]) -> str:
    """Format rows as a simple aligned table."""
    all_rows = [headers] + rows
    widths = [max(len(r[i]) for r in all_rows) for i in range(len(headers))]
    lines = []
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
    lines.append(header_line)
    lines.append("  ".join("-" * w for w in widths))
    for row in rows:
        lines.append("  ".join(c.ljust(w) for c, w in zip(row, widths)))
    return "\n".join(lines)


def setup_logging(runtime: RuntimeSettings) -> None:
    """Log to a file; the terminal belongs to curses."""
    log_path = runtime.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_path),
        level=getattr(logging, runtime.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _auth_from_args(args: argparse.Namespace) -> AuthConfig | None:
    if args.token_cmd:
        return AuthConfig(method="token", cmd=args.token_cmd)
    if args.token:
        return AuthConfig(method="token", token=args.token)
    if args.username:
        if args.password is None:
            raise ConfigError("--username needs --password")
        return AuthConfig(method="basic", username=args.username, password=args.password)
    return None


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

def _run_app(stdscr, shared: SharedState, worker: Worker, runtime: RuntimeSettings,
             server_id: str | None, errors: list[str], demo_mode: bool) -> str | None:
    renderer = CursesRenderer(stdscr, demo_mode=demo_mode)
    app = App(shared, worker, CursesInputSource(stdscr), renderer, tick_interval=runtime.tick_interval)
    worker.start()
    app.start(server_id, errors)
    return app.run()


def cmd_run(args: argparse.Namespace) -> None:
    """Start the terminal UI."""
    store = ConfigStore.load()
    runtime = store.runtime
    setup_logging(runtime)

    if args.demo:
        servers = [DEMO_SERVER]
        server_id = DEMO_SERVER.name
        errors: list[str] = []
        demo_client = DemoClient()

        def client_factory(name):
            return demo_client
    else:
        errors = store.discover() if store.managed_services else []
        servers = store.all_servers()
        server_id = args.server or store.active_server
        if server_id is not None and not store.has_server(server_id):
            if args.server:
                raise ConfigError(f"Server '{server_id}' is not configured")
            logger.warning("Active server '%s' no longer exists", server_id)
            server_id = None

        def client_factory(name):
            return create_client(store.get_server(name), timeout=runtime.request_timeout)

    shared = SharedState(AppState.create(servers, refresh_ticks=runtime.refresh_ticks))
    worker = Worker(shared, client_factory, capacity=runtime.queue_capacity)
    try:
        active = curses.wrapper(_run_app, shared, worker, runtime, server_id, errors, args.demo)
    except AirdeckError:
        logger.exception("airdeck stopped")
        raise
    except Exception:
        logger.exception("airdeck crashed")
        raise
    finally:
        worker.stop()

    if not args.demo and active is not None and active != store.active_server:
        store.set_active(active)
        store.save()


def cmd_add(args: argparse.Namespace) -> None:
    """Add a server to the config file."""
    store = ConfigStore.load()
    server = ServerConfig(
        name=args.name,
        endpoint=args.endpoint,
        auth=_auth_from_args(args) or AuthConfig(),
        airflow_version=args.airflow_version,
        proxy=args.proxy,
    )
    store.add_server(server)
    store.save()
    print(f"Added {server.name} ({server.endpoint})")


def cmd_list(args: argparse.Namespace) -> None:
    """List configured servers in a table."""
    store = ConfigStore.load()
    if args.discover and store.managed_services:
        for error in store.discover():
            print(f"Warning: {error}", file=sys.stderr)
    servers = store.all_servers()

    if not servers:
        print("No servers configured.")
        return

    headers = ["", "NAME", "ENDPOINT", "AIRFLOW", "AUTH", "SOURCE"]
    rows = []
    for s in servers:
        rows.append([
            "*" if s.name == store.active_server else "",
            s.name,
            s.endpoint,
            str(s.airflow_version),
            s.auth.method,
            s.managed or "config",
        ])

    print(_fmt_table(rows, headers))
    print(f"\n{len(servers)} server(s)")
    if store.managed_services:
        print(f"Managed services: {', '.join(store.managed_services)}")


def cmd_remove(args: argparse.Namespace) -> None:
    """Remove a server from the config file."""
    store = ConfigStore.load()
    server = store.remove_server(args.name)
    store.save()
    print(f"Removed {server.name}")


def cmd_update(args: argparse.Namespace) -> None:
    """Change fields of a configured server."""
    store = ConfigStore.load()
    server = store.update_server(
        args.name,
        name=args.new_name,
        endpoint=args.endpoint,
        airflow_version=args.airflow_version,
        proxy=args.proxy,
        auth=_auth_from_args(args),
    )
    store.save()
    print(f"Updated {server.name}")


def cmd_enable(args: argparse.Namespace) -> None:
    """Enable discovery of servers from a managed service."""
    store = ConfigStore.load()
    if store.enable_managed(args.service):
        store.save()
        print(f"Enabled {args.service}")
    else:
        print(f"{args.service} is already enabled")


def cmd_disable(args: argparse.Namespace) -> None:
    """Disable discovery of servers from a managed service."""
    store = ConfigStore.load()
    if store.disable_managed(args.service):
        store.save()
        print(f"Disabled {args.service}")
    else:
        print(f"{args.service} is not enabled")


def _add_auth_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--username", "-u", help="Basic auth username")
    parser.add_argument("--password", "-p", help="Basic auth password (${VAR} is expanded)")
    parser.add_argument("--token", help="Static bearer token")
    parser.add_argument("--token-cmd", help="Shell command printing a bearer token")
    parser.add_argument("--proxy", help="HTTP(S) proxy URL")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="airdeck",
        description="Terminal UI for Apache Airflow",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    sub = parser.add_subparsers(dest="command")

    # run
    p_run = sub.add_parser("run", help="Start the terminal UI")
    p_run.add_argument("--demo", action="store_true", help="Run in demo mode with sample data")
    p_run.add_argument("--server", "-s", help="Server to connect to (default: last active)")
    p_run.set_defaults(func=cmd_run)

    # add <name> <endpoint>
    p_add = sub.add_parser("add", help="Add a server")
    p_add.add_argument("name", help="Server name")
    p_add.add_argument("endpoint", help="Airflow base URL, e.g. http://localhost:8080")
    p_add.add_argument("--airflow-version", type=int, choices=AIRFLOW_VERSIONS, default=2,
                       help="Major Airflow version")
    _add_auth_arguments(p_add)
    p_add.set_defaults(func=cmd_add)

    # list
    p_list = sub.add_parser("list", aliases=["ls"], help="List servers")
    p_list.add_argument("--discover", "-d", action="store_true",
                        help="Include servers of enabled managed services")
    p_list.set_defaults(func=cmd_list)

    # remove <name>
    p_remove = sub.add_parser("remove", aliases=["rm"], help="Remove a server")
    p_remove.add_argument("name", help="Server name")
    p_remove.set_defaults(func=cmd_remove)

    # update <name>
    p_update = sub.add_parser("update", help="Update a server")
    p_update.add_argument("name", help="Server name")
    p_update.add_argument("--name", dest="new_name", help="Rename the server")
    p_update.add_argument("--endpoint", help="New base URL")
    p_update.add_argument("--airflow-version", type=int, choices=AIRFLOW_VERSIONS,
                          help="Major Airflow version")
    _add_auth_arguments(p_update)
    p_update.set_defaults(func=cmd_update)

    # enable / disable <service>
    p_enable = sub.add_parser("enable", help="Enable a managed service")
    p_enable.add_argument("service", choices=MANAGED_SERVICES)
    p_enable.set_defaults(func=cmd_enable)

    p_disable = sub.add_parser("disable", help="Disable a managed service")
    p_disable.add_argument("service", choices=MANAGED_SERVICES)
    p_disable.set_defaults(func=cmd_disable)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(0)

    try:
        args.func(args)
    except AirdeckError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
