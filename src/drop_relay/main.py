"""
Drop Relay - Main Entry Point

Replays a recorded game session through the relay: every line is parsed,
correlated and routed, and the resulting submissions are posted to the
webhook with the full retry machinery.

Usage:
    python -m drop_relay.main --replay session.log
    python -m drop_relay.main --replay session.log --dry-run
    python -m drop_relay.main --replay session.log --groups groups.json

Replay format:
    One line per game tick. Plain lines are game chat messages. Other
    callbacks use a prefix:

        loot: Vorkath | 11286x1, 536x2
        skill: Attack 99 13034431
        clan: Zezima has a funny feeling like he's being followed: ...
        friends: Congratulations - your raid is complete! ...

    Blank lines advance one tick. Lines starting with "#" are ignored.

Configuration:
    Environment variables (see drop_relay.config), optionally loaded from
    a .env file in the working directory.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from drop_relay.config import LOG_LEVELS, RelayConfig
from drop_relay.core import EventPipeline, Scheduler
from drop_relay.delivery import DeliveryService, WebhookClient
from drop_relay.errors import ConfigError
from drop_relay.monitoring import HealthChecker
from drop_relay.routing import (
    GroupConfig,
    SubmissionRecord,
    SubmissionRouter,
    WebhookBody,
    load_group_configs,
)
from drop_relay.routing.router import Dispatch

logger = logging.getLogger(__name__)

LOOT_PREFIX = "loot:"
SKILL_PREFIX = "skill:"
CLAN_PREFIX = "clan:"
FRIENDS_PREFIX = "friends:"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def log_dispatch(
    payload: WebhookBody,
    screenshot: Optional[bytes],
    record: Optional[SubmissionRecord],
) -> None:
    """Dry-run dispatch: log the payload instead of posting it."""
    attached = " (+screenshot)" if screenshot else ""
    logger.info(f"[DRY RUN] {payload.event_type} payload{attached}: {payload.to_json()}")
    if record is not None:
        record.mark_sent()


def parse_items(text: str) -> List[tuple]:
    """
    Parse "11286x1, 536x2" into [(11286, 1), (536, 2)].

    Raises:
        ValueError: If an entry is not <id>x<quantity>
    """
    items = []
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue
        item_id, sep, quantity = entry.partition("x")
        if not sep:
            raise ValueError(f"expected <id>x<quantity>, got {entry!r}")
        items.append((int(item_id), int(quantity)))
    return items


def load_groups(path: str) -> List[GroupConfig]:
    """Load group configs from the service's JSON list."""
    with open(path) as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise ConfigError(f"{path} must contain a JSON list of group configs")
    configs = load_group_configs(raw)
    logger.info(f"Loaded {len(configs)} group configs from {path}")
    return configs


class ReplaySession:
    """
    Wires the pipeline to the router for one replay.

    Usage:
        session = ReplaySession(config, dispatch=service.submit)
        lines = await session.replay(open("session.log"))
    """

    def __init__(
        self,
        config: RelayConfig,
        dispatch: Dispatch,
        group_configs: Optional[List[GroupConfig]] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.router = SubmissionRouter(
            dispatch=dispatch,
            config=config.router_config(),
            screenshot_policy=config.screenshots,
        )
        self.pipeline = EventPipeline(
            emit=self.router.handle,
            player_name=config.player_name,
            account_hash=config.account_hash,
            scheduler=scheduler,
            correlator_config=config.correlator,
        )
        if group_configs is not None:
            self.router.on_group_configs_loaded(group_configs)

    def feed(self, line: str) -> bool:
        """
        Apply one replay line and advance one tick.

        Returns:
            False if the line was a comment or could not be parsed
        """
        line = line.rstrip("\r\n")
        if line.startswith("#"):
            return False

        try:
            self._apply(line)
        except ValueError as e:
            logger.warning(f"Skipping replay line {line!r}: {e}")
            return False

        self.pipeline.on_tick()
        return True

    def _apply(self, line: str) -> None:
        if line.startswith(LOOT_PREFIX):
            source, sep, items = line[len(LOOT_PREFIX):].partition("|")
            if not sep:
                raise ValueError("expected 'loot: <source> | <items>'")
            self.pipeline.on_loot(source.strip(), parse_items(items))
        elif line.startswith(SKILL_PREFIX):
            parts = line[len(SKILL_PREFIX):].split()
            if len(parts) != 3:
                raise ValueError("expected 'skill: <name> <level> <xp>'")
            self.pipeline.on_skill_update(parts[0], int(parts[1]), int(parts[2]))
        elif line.startswith(CLAN_PREFIX):
            self.pipeline.on_clan_message(line[len(CLAN_PREFIX):].strip())
        elif line.startswith(FRIENDS_PREFIX):
            self.pipeline.on_friends_chat(line[len(FRIENDS_PREFIX):].strip())
        elif line.strip():
            self.pipeline.on_game_message(line)

    async def replay(self, lines: Iterable[str], tick_seconds: float = 0.0) -> int:
        """
        Feed every line, yielding to the event loop between ticks.

        Returns:
            Number of lines applied
        """
        applied = 0
        for line in lines:
            if self.feed(line):
                applied += 1
            await asyncio.sleep(tick_seconds)

        flushed = self.pipeline.flush()
        if flushed:
            logger.info(f"Flushed {flushed} pending kills at end of replay")
        return applied


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Drop Relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--replay",
        type=str,
        required=True,
        help="Recorded session to replay, one tick per line",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log payloads instead of posting them",
    )
    parser.add_argument(
        "--groups",
        type=str,
        help="JSON file with group configs (overrides GROUP_CONFIGS_PATH)",
    )
    parser.add_argument(
        "--tick-seconds",
        type=float,
        default=0.0,
        help="Delay between replayed ticks (default: 0)",
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        help="Override log level",
    )
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace, config: RelayConfig) -> int:
    """Async main function."""
    if args.dry_run:
        config.dry_run = True
    if args.groups:
        config.group_configs_path = args.groups

    try:
        config.validate()
        group_configs = load_groups(config.group_configs_path) if config.group_configs_path else None
    except (ConfigError, OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    try:
        with open(args.replay) as f:
            lines = f.readlines()
    except OSError as e:
        logger.error(f"Cannot read replay file: {e}")
        return 1

    logger.info("=" * 60)
    logger.info("DROP RELAY")
    logger.info("=" * 60)
    logger.info(f"Replay: {args.replay} ({len(lines)} lines)")
    logger.info(f"Delivery: {'DRY RUN' if config.dry_run else config.webhook_url}")
    logger.info("=" * 60)

    if config.dry_run:
        session = ReplaySession(config, dispatch=log_dispatch, group_configs=group_configs)
        applied = await session.replay(lines, args.tick_seconds)
        print(json.dumps({"lines": applied, "router": session.router.get_stats()}, indent=2))
        return 0

    async with WebhookClient(config.client) as client:
        service = DeliveryService(client, config.retry)
        await service.start()
        session = ReplaySession(config, dispatch=service.submit, group_configs=group_configs)
        try:
            applied = await session.replay(lines, args.tick_seconds)
        finally:
            await service.stop()

        health = await HealthChecker(
            delivery=service,
            correlator=session.pipeline.correlator,
            router=session.router,
        ).check_all()

        print(json.dumps(
            {
                "lines": applied,
                "router": session.router.get_stats(),
                "delivery": service.stats().to_dict(),
                "session": session.router.history.stats().to_dict(),
                "health": health.to_dict(),
            },
            indent=2,
        ))

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_env_file()

    args = parse_args(argv)

    try:
        config = RelayConfig.from_env()
    except ConfigError as e:
        configure_logging("INFO")
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(args.log_level or config.log_level)

    try:
        return asyncio.run(main_async(args, config))
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
        return 0


if __name__ == "__main__":
    sys.exit(main())
