"""pushpilot command line.

Usage:
    pushpilot serve [--host H] [--port P]
    pushpilot stop
    pushpilot check [--server URL]
    pushpilot configure REPO_URL [--server URL ...]
    pushpilot install-hooks [PATH] [--force]
    pushpilot remove-hooks [PATH]
    pushpilot register-webhook REPO_URL
    pushpilot deregister-webhook REPO_URL
"""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
from pathlib import Path

import httpx

from pushpilot import VERSION
from pushpilot.clients.github_client import GitHubClient
from pushpilot.config import Settings, check_required_settings, settings
from pushpilot.errors import InvalidRepositoryURL
from pushpilot.interfaces import HookInstaller
from pushpilot.logging_config import configure_logging
from pushpilot.services.config_store import parse_repo_url
from pushpilot.services.hooks import HookError, HookManager

HTTP_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Coloured output
# ---------------------------------------------------------------------------

_ANSI_OK = os.name != "nt" and sys.stdout.isatty()


def _c(text: str, code: str) -> str:
    return f"\033[{code}m{text}\033[0m" if _ANSI_OK else text


def info(msg: str) -> None:
    print(_c(f"[pushpilot] {msg}", "36"))   # cyan


def warn(msg: str) -> None:
    print(_c(f"[pushpilot] {msg}", "33"))   # yellow


def err(msg: str) -> None:
    print(_c(f"[pushpilot] {msg}", "31"), file=sys.stderr)  # red


def ok(msg: str) -> None:
    print(_c(f"[pushpilot] {msg}", "32"))   # green


# ---------------------------------------------------------------------------
# PID file
# ---------------------------------------------------------------------------

def read_pid(pid_file: str) -> int | None:
    """PID recorded in *pid_file*, or None when missing or garbled."""
    try:
        return int(Path(pid_file).read_text().strip())
    except (OSError, ValueError):
        return None


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by someone else
    return True


def _remove_pid_file(pid_file: str) -> None:
    Path(pid_file).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_serve(args: argparse.Namespace, cfg: Settings) -> int:
    import uvicorn

    check_required_settings(cfg)
    pid = read_pid(cfg.PID_FILE)
    if pid is not None and pid != os.getpid() and pid_alive(pid):
        err(f"Server is already running (PID {pid}).")
        return 1

    Path(cfg.PID_FILE).write_text(str(os.getpid()))
    host = args.host or cfg.HOST
    port = args.port or cfg.PORT
    info(f"Starting pushpilot {VERSION} on {host}:{port} (Ctrl+C to stop)")
    try:
        uvicorn.run(
            "pushpilot.main:app",
            host=host,
            port=port,
            log_level=cfg.LOG_LEVEL.lower(),
            timeout_graceful_shutdown=cfg.SHUTDOWN_GRACE_SECONDS,
        )
    finally:
        _remove_pid_file(cfg.PID_FILE)
    return 0


def cmd_stop(args: argparse.Namespace, cfg: Settings) -> int:
    pid = read_pid(cfg.PID_FILE)
    if pid is None:
        warn("No server is currently running.")
        _remove_pid_file(cfg.PID_FILE)
        return 0
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        warn(f"Server process {pid} was not running; removed stale PID file.")
        _remove_pid_file(cfg.PID_FILE)
        return 0
    except PermissionError:
        err(f"Not allowed to signal process {pid}.")
        return 1
    ok(f"Sent SIGTERM to server (PID {pid}).")
    return 0


def _health(server: str) -> bool:
    try:
        response = httpx.get(f"{server.rstrip('/')}/health", timeout=HTTP_TIMEOUT)
    except httpx.HTTPError as exc:
        warn(f"{server}: unreachable ({exc})")
        return False
    if response.status_code != 200:
        warn(f"{server}: /health returned {response.status_code}")
        return False
    return True


def cmd_check(args: argparse.Namespace, cfg: Settings) -> int:
    pid = read_pid(cfg.PID_FILE)
    if pid is None:
        info("No local PID file.")
    elif pid_alive(pid):
        info(f"Local server process running (PID {pid}).")
    else:
        warn(f"Stale PID file for {pid}.")

    server = args.server or cfg.PUBLIC_URL
    if _health(server):
        ok(f"{server} is healthy.")
        return 0
    err(f"{server} is not responding.")
    return 1


def cmd_configure(args: argparse.Namespace, cfg: Settings) -> int:
    """Point the first healthy server at REPO_URL."""
    servers = args.server or [cfg.PUBLIC_URL]
    for server in servers:
        if not _health(server):
            continue
        try:
            response = httpx.post(
                f"{server.rstrip('/')}/config",
                json={"repo_url": args.repo_url},
                timeout=HTTP_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            warn(f"{server}: /config failed ({exc})")
            continue
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code == 200 and body.get("status") == "config_stored":
            ok(f"{server} configured for {body.get('owner')}/{body.get('name')}.")
            return 0
        warn(f"{server}: /config returned {response.status_code}: {body.get('detail', response.text)}")
    err("No server accepted the configuration.")
    return 1


def cmd_install_hooks(args: argparse.Namespace, cfg: Settings) -> int:
    try:
        names = HookManager(cfg.PUBLIC_URL).install_hooks(args.path, force=args.force)
    except HookError as exc:
        err(str(exc))
        return 1
    ok(f"Installed {', '.join(names)} in {args.path} (posting to {cfg.PUBLIC_URL}/push).")
    return 0


def cmd_remove_hooks(args: argparse.Namespace, cfg: Settings) -> int:
    try:
        names = HookManager(cfg.PUBLIC_URL).remove_hooks(args.path)
    except HookError as exc:
        err(str(exc))
        return 1
    if names:
        ok(f"Removed {', '.join(names)} from {args.path}.")
    else:
        info("No pushpilot hooks found.")
    return 0


async def _with_hook_manager(cfg: Settings, action):
    client = GitHubClient(cfg.GITHUB_TOKEN, api_base=cfg.GITHUB_API_URL)
    try:
        return await action(HookManager(cfg.PUBLIC_URL, client, cfg.GITHUB_WEBHOOK_SECRET))
    finally:
        await client.close()


def _webhook_command(args: argparse.Namespace, cfg: Settings, register: bool) -> int:
    if not cfg.GITHUB_TOKEN:
        err("GITHUB_TOKEN is required for webhook commands.")
        return 1
    try:
        owner, repo = parse_repo_url(args.repo_url)
    except InvalidRepositoryURL as exc:
        err(str(exc))
        return 1

    async def action(manager: HookInstaller):
        if register:
            return await manager.register_webhook(owner, repo)
        return await manager.deregister_webhook(owner, repo)

    try:
        result = asyncio.run(_with_hook_manager(cfg, action))
    except httpx.HTTPError as exc:
        err(f"GitHub request failed: {exc}")
        return 1

    if register:
        if result is None:
            info(f"Webhook already registered on {owner}/{repo}.")
        else:
            ok(f"Created webhook {result} on {owner}/{repo}.")
        return 0
    if result:
        ok(f"Removed webhook from {owner}/{repo}.")
        return 0
    warn(f"No pushpilot webhook found on {owner}/{repo}.")
    return 1


def cmd_register_webhook(args: argparse.Namespace, cfg: Settings) -> int:
    return _webhook_command(args, cfg, register=True)


def cmd_deregister_webhook(args: argparse.Namespace, cfg: Settings) -> int:
    return _webhook_command(args, cfg, register=False)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pushpilot",
        description="Turn pushes into AI-written pull requests.",
    )
    parser.add_argument("--version", action="version", version=f"pushpilot {VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the webhook server.")
    p.add_argument("--host", help="Bind address (default: HOST).")
    p.add_argument("--port", type=int, help="Port (default: PORT).")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("stop", help="Stop the local server via its PID file.")
    p.set_defaults(func=cmd_stop)

    p = sub.add_parser("check", help="Report PID file status and server health.")
    p.add_argument("--server", help="Server base URL (default: PUBLIC_URL).")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("configure", help="Set the repository on a running server.")
    p.add_argument("repo_url")
    p.add_argument("--server", action="append",
                   help="Server base URL; repeat to try several in order.")
    p.set_defaults(func=cmd_configure)

    p = sub.add_parser("install-hooks", help="Install the git hooks into a repository.")
    p.add_argument("path", nargs="?", default=".")
    p.add_argument("--force", action="store_true",
                   help="Overwrite hooks not managed by pushpilot.")
    p.set_defaults(func=cmd_install_hooks)

    p = sub.add_parser("remove-hooks", help="Remove pushpilot git hooks.")
    p.add_argument("path", nargs="?", default=".")
    p.set_defaults(func=cmd_remove_hooks)

    p = sub.add_parser("register-webhook", help="Create the GitHub push webhook.")
    p.add_argument("repo_url")
    p.set_defaults(func=cmd_register_webhook)

    p = sub.add_parser("deregister-webhook", help="Delete the GitHub push webhook.")
    p.add_argument("repo_url")
    p.set_defaults(func=cmd_deregister_webhook)
    return parser


def main(argv: list[str] | None = None, cfg: Settings | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = cfg or settings
    configure_logging(cfg.LOG_LEVEL, cfg.LOG_FILE)
    return args.func(args, cfg)


if __name__ == "__main__":
    sys.exit(main())
