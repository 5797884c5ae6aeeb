from __future__ import annotations

import argparse
import asyncio
import logging
import os
import socket
import subprocess
import sys
import tempfile
import time
from contextlib import AsyncExitStack
from pathlib import Path

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from swapbot.composition import build_bot, build_market_client, build_scorer, build_venue
from swapbot.config import get_config, load_config, repo_root
from swapbot.policies.registry import available_strategies

logger = logging.getLogger("swapbot")

DEFAULT_MOCK_PORT = 18090


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _probe_server(base_url: str) -> int | None:
    try:
        return httpx.get(f"{base_url}/health", timeout=1).status_code
    except httpx.HTTPError:
        return None


def _tail_file(path: Path, max_lines: int = 20) -> str:
    if not path.exists():
        return ""
    with path.open("r", encoding="utf-8", errors="ignore") as handle:
        return "".join(handle.readlines()[-max_lines:]).strip()


def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _wait_for_server(
    base_url: str, timeout_sec: int = 15, proc: subprocess.Popen | None = None, log_path: Path | None = None
) -> None:
    deadline = time.time() + timeout_sec
    while time.time() < deadline:
        if proc and proc.poll() is not None:
            break
        if _probe_server(base_url) == 200:
            return
        time.sleep(0.3)
    if proc and proc.poll() is not None:
        message = f"Mock market API exited with code {proc.returncode}"
    else:
        message = f"Mock market API at {base_url} did not become ready in {timeout_sec}s"
    if log_path:
        tail = _tail_file(log_path)
        if tail:
            message = f"{message}\nMock API log tail:\n{tail}"
    raise RuntimeError(message)


def _print_status(status) -> None:
    table = Table(title="Bot Status")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    for key, value in status.model_dump().items():
        table.add_row(key, str(value))
    Console().print(table)


async def run_bot(cfg: dict, cycles: int, sleep: bool, log_dir: Path | None) -> None:
    async with AsyncExitStack() as stack:
        market = await stack.enter_async_context(build_market_client(cfg))
        venue = build_venue(cfg, market)
        if venue is not market:
            await stack.enter_async_context(venue)
        scorer = build_scorer(cfg)
        if scorer is not None:
            await stack.enter_async_context(scorer)
        bot = build_bot(cfg, market=market, venue=venue, scorer=scorer, log_dir=log_dir)
        for mint in cfg.get("whitelist", []) or []:
            bot.add_to_whitelist(str(mint))
        try:
            if cycles > 0:
                await bot.run(cycles, sleep=sleep)
            else:
                await bot.start()
                try:
                    await asyncio.Event().wait()
                finally:
                    await bot.stop()
        finally:
            bot.trade_log.summarize()
            bot.trade_log.close()
            _print_status(bot.status())
            if bot.trade_log.path:
                logger.info(f"Trade log: {bot.trade_log.path}")


def cmd_mock_run(cfg: dict, cycles: int, log_dir: Path | None) -> None:
    port = DEFAULT_MOCK_PORT
    base_url = f"http://127.0.0.1:{port}"
    if _probe_server(base_url) is not None:
        port = _find_free_port()
        base_url = f"http://127.0.0.1:{port}"
        logger.info(f"Port {DEFAULT_MOCK_PORT} in use; starting mock market API on {base_url}")
    os.environ["MARKET_API_BASE"] = base_url
    cfg.setdefault("orchestrator", {})["interval_sec"] = 0

    root = repo_root()
    env = os.environ.copy()
    env["PYTHONPATH"] = f"{root}{os.pathsep}{env.get('PYTHONPATH', '')}"
    log_file = tempfile.NamedTemporaryFile(prefix="mock_market_", suffix=".log", delete=False)
    log_path = Path(log_file.name)
    log_file.close()

    success = False
    with log_path.open("w", encoding="utf-8") as log_handle:
        proc = subprocess.Popen(
            [sys.executable, "-m", "uvicorn", "mock_api.server:app", "--host", "127.0.0.1", "--port", str(port)],
            stdout=log_handle,
            stderr=subprocess.STDOUT,
            cwd=str(root),
            env=env,
        )
        try:
            _wait_for_server(base_url, proc=proc, log_path=log_path)
            asyncio.run(run_bot(cfg, cycles=cycles, sleep=False, log_dir=log_dir))
            success = True
        finally:
            proc.terminate()
            proc.wait(timeout=5)
    if success:
        log_path.unlink(missing_ok=True)


def cmd_run(cfg: dict, cycles: int, log_dir: Path | None) -> None:
    asyncio.run(run_bot(cfg, cycles=cycles, sleep=True, log_dir=log_dir))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="swapbot trading engine")
    parser.add_argument("command", choices=["mock-run", "run"], help="Command to run")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    parser.add_argument("--cycles", type=int, default=None, help="Number of cycles (0 = run until interrupted)")
    parser.add_argument("--strategy", type=str, choices=available_strategies(), default=None, help="Strategy variant")
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for trade logs (default: runs/)")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    cfg = load_config(args.config) if args.config else get_config(refresh=True)
    if args.strategy:
        cfg.setdefault("strategy", {})["type"] = args.strategy
    log_dir = Path(args.log_dir) if args.log_dir else repo_root() / "runs"

    if args.command == "mock-run":
        cycles = 40 if args.cycles is None else args.cycles
        cmd_mock_run(cfg, cycles=cycles, log_dir=log_dir)
    elif args.command == "run":
        cycles = 0 if args.cycles is None else args.cycles
        try:
            cmd_run(cfg, cycles=cycles, log_dir=log_dir)
        except KeyboardInterrupt:
            logger.info("Interrupted; shutting down")


if __name__ == "__main__":
    main()
