"""
LFT (LAN File Transfer) CLI entry point.

Usage:
    python -m lft send <path> [--port N] [--bind IP] [--timeout S] [--quiet]
    python -m lft receive [--dir DIR] [--port N] [--bind IP] [--timeout S] [--quiet]
    python -m lft info <path>
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import Settings
from .controller import TransferController
from .errors import SessionBusyError, SetupError
from .events import OperationCompleted
from .progress import NullView, ProgressView
from .protocol import DEFAULT_PORT, TIMEOUT
from .stats import format_size


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        level=level,
    )


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings(
        transfer_port=args.port,
        local_ip=args.bind,
        timeout=args.timeout,
    )
    if getattr(args, "dir", None):
        settings.dest_dir = args.dir
    return settings


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------

def _run_session(controller: TransferController, view: ProgressView | NullView) -> int:
    """Pump controller events into *view* until the session ends."""
    view.start()
    try:
        while True:
            event = controller.events.get(timeout=0.5)
            if event is None:
                continue
            view.handle(event)
            if isinstance(event, OperationCompleted):
                return 0 if event.ok else 1
    except KeyboardInterrupt:
        print("\n[lft] Interrupted.", file=sys.stderr)
        return 130
    finally:
        view.stop()


def _view(args: argparse.Namespace, direction: str) -> ProgressView | NullView:
    return NullView() if args.quiet else ProgressView(direction=direction)


def cmd_send(args: argparse.Namespace) -> int:
    """Send one file or folder to the first receiver that answers."""
    controller = TransferController(_settings(args))
    try:
        controller.start_send(args.path)
    except SessionBusyError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    code = _run_session(controller, _view(args, "↑ SEND"))
    if code == 0:
        stats = controller.get_stats()
        print(f"[lft] ✓ Sent {stats.completed_files} file(s), "
              f"{format_size(stats.transferred_bytes)}.")
    return code


def cmd_receive(args: argparse.Namespace) -> int:
    """Wait for one incoming transfer."""
    controller = TransferController(_settings(args))
    try:
        print(f"[lft] Waiting on {controller.local_ip()}:{args.port} → {args.dir}",
              file=sys.stderr)
    except SetupError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    controller.start_receive()
    code = _run_session(controller, _view(args, "↓ RECV"))
    if code == 0:
        stats = controller.get_stats()
        print(f"[lft] ✓ Received {stats.completed_files} file(s), "
              f"{format_size(stats.transferred_bytes)}.")
    return code


def cmd_info(args: argparse.Namespace) -> int:
    """Describe a file or folder the way a sender would see it."""
    info = TransferController().get_path_info(args.path)
    if info.error:
        print(f"Error: {info.error}", file=sys.stderr)
        return 1
    print(f"{'Name:':<10} {info.name}")
    print(f"{'Type:':<10} {'folder' if info.is_dir else 'file'}")
    print(f"{'Size:':<10} {info.size_display}")
    print(f"{'Modified:':<10} {info.mod_time}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _add_network_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--port", type=int, default=DEFAULT_PORT,
                   help=f"TCP transfer port (default {DEFAULT_PORT})")
    p.add_argument("--bind", default=None, metavar="IP",
                   help="Local IP to use (default: auto-detect)")
    p.add_argument("--timeout", type=float, default=TIMEOUT,
                   help=f"Discovery/connect timeout in seconds (default {TIMEOUT:.0f})")
    p.add_argument("--quiet", action="store_true", help="No progress bar")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lft",
        description="LFT: LAN File Transfer (zero-config, broadcast discovery)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    # --- send ---
    p_send = sub.add_parser("send", help="Send a file or folder to a receiver")
    p_send.add_argument("path", help="File or directory to send")
    _add_network_args(p_send)

    # --- receive ---
    p_recv = sub.add_parser("receive", help="Receive one transfer")
    p_recv.add_argument("--dir", default=".",
                        help="Directory to save received files (default: current)")
    _add_network_args(p_recv)

    # --- info ---
    p_info = sub.add_parser("info", help="Show size and file count of a path")
    p_info.add_argument("path")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    handlers = {
        "send":    cmd_send,
        "receive": cmd_receive,
        "info":    cmd_info,
    }
    sys.exit(handlers[args.command](args))


if __name__ == "__main__":
    main()
