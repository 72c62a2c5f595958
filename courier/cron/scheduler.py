"""Autonomous posting loops with jittered intervals and persisted last-run state."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from courier.agent.context import build_state, compose_context
from courier.agent.pipeline import ResponsePipeline
from courier.config import AgentConfig, FeedConfig, ScheduleWindow
from courier.delivery.chunking import FEED_AUTHORING_TARGET, FEED_MAX_POST_LENGTH, truncate
from courier.delivery.dispatcher import DeliveryDispatcher
from courier.models import Content, MemoryRecord, ModelTier, SentMessage, now_ms
from courier.prompts.templates import POST_TEMPLATE, TAGGED_POST_TEMPLATE
from courier.storage.db import Database
from courier.utils.ids import scoped_id, string_to_uuid


def _last_run_timestamp(value) -> int:
    """Timestamp from a cached last-run entry; older entries may be a bare number."""
    if isinstance(value, dict):
        value = value.get("timestamp")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


@dataclass(frozen=True)
class ScheduledAction:
    """One independently scheduled kind of post."""
    name: str
    cache_suffix: str
    window: Callable[[], ScheduleWindow]
    template: str
    # Tag actions pick a random target from this pool each time they fire.
    targets: Callable[[], list[str]] | None = None


class AutonomousPostScheduler:
    """Runs one ScheduledAction forever: check due, maybe post, sleep, repeat.

    The interval is re-rolled once per pass and used both for the due check
    and for the following sleep. The last-run timestamp only moves on a
    successful send, so a failed pass is retried on the next one.
    """

    def __init__(
        self,
        action: ScheduledAction,
        pipeline: ResponsePipeline,
        dispatcher: DeliveryDispatcher,
        db: Database,
        agent_config: AgentConfig,
        feed_config: FeedConfig,
        post_immediately: bool = False,
        rng: random.Random | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.action = action
        self.pipeline = pipeline
        self.dispatcher = dispatcher
        self.db = db
        self.agent_config = agent_config
        self.feed_config = feed_config
        self.rng = rng or random.Random()
        self.clock = clock
        self._post_immediately = post_immediately
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def cache_key(self) -> str:
        return f"{self.feed_config.platform}/{self.feed_config.username}/{self.action.cache_suffix}"

    @property
    def room_id(self) -> str:
        return string_to_uuid(f"{self.feed_config.platform}_generate_room-{self.feed_config.username}")

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._loop())
        window = self.action.window()
        logger.info(
            f"Scheduler '{self.action.name}' started "
            f"(every {window.min_minutes}-{window.max_minutes}min)"
        )

    def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _loop(self) -> None:
        while self._running:
            delay = await self.tick()
            await asyncio.sleep(delay)

    def roll_minutes(self) -> int:
        window = self.action.window()
        return self.rng.randint(window.min_minutes, window.max_minutes)

    async def tick(self) -> float:
        """Run one pass. Returns the number of seconds until the next pass."""
        minutes = self.roll_minutes()
        delay_ms = minutes * 60 * 1000
        try:
            last_run = _last_run_timestamp(await self.db.cache_get(self.cache_key))
            forced = self._post_immediately
            self._post_immediately = False
            if forced or self.clock() > last_run + delay_ms:
                await self.run_once()
        except Exception as e:
            logger.error(f"Scheduler '{self.action.name}' pass failed: {e}")
        logger.info(f"Next {self.action.name} scheduled in {minutes} minutes")
        return minutes * 60

    async def run_once(self) -> SentMessage | None:
        """Generate and deliver one post. Returns the sent post, or None if nothing went out."""
        target = None
        if self.action.targets is not None:
            pool = self.action.targets()
            if not pool:
                logger.info("No targets configured for tagging")
                return None
            target = self.rng.choice(pool)

        username = self.feed_config.username
        platform = self.feed_config.platform
        agent_id = self.agent_config.agent_id
        await self.db.ensure_connection(agent_id, self.room_id, self.agent_config.name, platform)

        extra = {"feedUserName": username, "maxPostChars": FEED_AUTHORING_TARGET}
        if target:
            extra["taggedUser"] = target
        state = await build_state(self.db, self.agent_config, self.room_id, extra=extra, rng=self.rng)
        context = compose_context(state, self.action.template)
        logger.debug(f"Generate {self.action.name} prompt:\n{context}")

        content = await self.pipeline.generate(None, state, context, ModelTier.LIGHT)
        if not content or not content.text:
            return None

        raw_text = content.text.replace("\\n", "\n").strip()
        text = truncate(raw_text, FEED_MAX_POST_LENGTH)

        if self.feed_config.dry_run:
            logger.info(f"Dry run: would have posted {self.action.name}: {text}")
            return None

        logger.info(f"Posting new {self.action.name}:\n {text}")
        sent = await self.dispatcher.send(username, text)
        if not sent:
            return None
        post = sent[0]

        last_run = {"id": post.id, "timestamp": self.clock()}
        if target:
            last_run["taggedUser"] = target
        await self.db.cache_set(self.cache_key, last_run)
        await self.db.cache_set(
            f"{platform}/{username}/post/{post.id}",
            {"id": post.id, "text": post.text, "url": post.url, "timestamp": post.timestamp},
        )
        await self.db.create_memory(
            MemoryRecord(
                id=scoped_id(post.id, agent_id),
                agent_id=agent_id,
                user_id=agent_id,
                room_id=self.room_id,
                content=Content(text=raw_text, url=post.url, source=platform),
                created_at=post.timestamp,
            )
        )
        logger.info(f"{self.action.name.capitalize()} posted: {post.url or post.id}")
        return post


def build_feed_schedulers(
    pipeline: ResponsePipeline,
    dispatcher: DeliveryDispatcher,
    db: Database,
    agent_config: AgentConfig,
    feed_config: FeedConfig,
    rng: random.Random | None = None,
) -> list[AutonomousPostScheduler]:
    """Ordinary posting always; tagging only when a tag pool is configured."""
    post = ScheduledAction(
        name="post",
        cache_suffix="lastPost",
        window=lambda: feed_config.post_window(agent_config),
        template=agent_config.resolve_template(
            f"{feed_config.platform}_post", "post", default=POST_TEMPLATE
        ),
    )
    schedulers = [
        AutonomousPostScheduler(
            post, pipeline, dispatcher, db, agent_config, feed_config,
            post_immediately=feed_config.post_immediately, rng=rng,
        )
    ]
    if feed_config.tag_usernames:
        tag = ScheduledAction(
            name="tag",
            cache_suffix="lastTagged",
            window=lambda: feed_config.tag_window(agent_config),
            template=agent_config.resolve_template(
                f"{feed_config.platform}_tagged_post", "tagged_post", default=TAGGED_POST_TEMPLATE
            ),
            targets=lambda: list(feed_config.tag_usernames),
        )
        schedulers.append(
            AutonomousPostScheduler(tag, pipeline, dispatcher, db, agent_config, feed_config, rng=rng)
        )
    return schedulers
