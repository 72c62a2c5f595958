"""courier - Entry point. Wires channels, the response pipeline and the post schedulers."""

import asyncio
import signal
import sys
from typing import Any

from loguru import logger

from courier.agent.handler import MessageHandler
from courier.agent.pipeline import ResponsePipeline
from courier.agent.policy import RespondPolicy
from courier.config import Config, load_config
from courier.cron.scheduler import AutonomousPostScheduler, build_feed_schedulers
from courier.delivery.dispatcher import DeliveryDispatcher, single_post
from courier.providers.litellm_provider import LiteLLMProvider
from courier.providers.registry import PROVIDERS
from courier.storage.db import get_db
from courier.utils.logger import setup_logging


def build_provider(config: Config) -> LiteLLMProvider:
    agent = config.agent
    provider_cfg, provider_name = config.get_provider(agent.model)
    provider_spec = next((spec for spec in PROVIDERS if spec.name == provider_name), None)
    api_base = provider_cfg.api_base if provider_cfg else None
    if not api_base and provider_spec and provider_spec.default_api_base:
        api_base = provider_spec.default_api_base
    provider_api_keys = {
        spec.name: p.api_key
        for spec in PROVIDERS
        if (p := getattr(config.providers, spec.name, None)) and p.api_key
    }
    return LiteLLMProvider(
        api_key=provider_cfg.api_key if provider_cfg else None,
        api_base=api_base,
        default_model=agent.model,
        tier_models={tier: agent.model_for_tier(tier) for tier in ("light", "medium", "heavy")},
        provider_name=provider_name,
        fallback_models=agent.fallback_models,
        fallback_max_attempts=agent.fallback_max_attempts,
        provider_api_keys=provider_api_keys,
        temperature=agent.temperature,
        max_tokens=agent.max_tokens,
    )


class Courier:
    """Main application: wires store, provider, channels and schedulers."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config = load_config(config_path)
        workspace = self.config.workspace_path()
        workspace.mkdir(parents=True, exist_ok=True)
        self.db = get_db(workspace)
        self.provider = build_provider(self.config)
        self.pipeline = ResponsePipeline(self.provider, self.db, self.config.agent, self.config.sanitizer)
        self._channels: dict[str, Any] = {}
        self._schedulers: list[AutonomousPostScheduler] = []
        self._tasks: list[asyncio.Task] = []

    def _on_telegram_ready(self, username: str) -> None:
        if not self.config.agent.handle:
            self.config.agent.handle = username

    def _init_telegram(self) -> None:
        from courier.channels.telegram import TelegramChannel

        channel = TelegramChannel(self.config.telegram, on_ready=self._on_telegram_ready)
        image_service = None
        if self.config.telegram.describe_images:
            from courier.providers.vision import ImageDescriptionService
            image_service = ImageDescriptionService(
                model=self.config.agent.model_for_tier("heavy"),
                api_key=self.provider.api_key,
                api_base=self.provider.api_base,
            )
        handler = MessageHandler(
            db=self.db,
            policy=RespondPolicy(self.provider, self.config.agent, template_names=("telegram_should_respond",)),
            pipeline=self.pipeline,
            dispatcher=DeliveryDispatcher(channel),
            agent_config=self.config.agent,
            channel_config=self.config.telegram,
            image_service=image_service,
        )
        channel.on_message = handler.handle
        self._channels["telegram"] = channel
        logger.info("Telegram channel enabled")

    def _init_feed(self) -> None:
        from courier.channels.feed import FeedChannel

        channel = FeedChannel(self.config.feed)
        dispatcher = DeliveryDispatcher(channel, splitter=single_post)
        self._channels["feed"] = channel
        self._schedulers = build_feed_schedulers(
            self.pipeline, dispatcher, self.db, self.config.agent, self.config.feed
        )
        logger.info(f"Feed channel enabled ({len(self._schedulers)} scheduled action(s))")

    async def start(self) -> None:
        logger.info("courier starting...")
        if self.config.telegram.enabled:
            self._init_telegram()
        if self.config.feed.enabled:
            self._init_feed()

        for name, channel in self._channels.items():
            logger.info(f"Starting {name} channel...")
            self._tasks.append(asyncio.create_task(self._start_channel(name, channel)))
        for scheduler in self._schedulers:
            await scheduler.start()
            # Scheduler loops never finish on their own; they keep start() alive until stop().
            self._tasks.append(scheduler.task)

        logger.info(f"courier running with {len(self._channels)} channel(s)")
        try:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            pass

    async def post_once(self) -> None:
        """Generate and deliver a single feed post, then exit."""
        self._init_feed()
        channel = self._channels["feed"]
        await channel.start()
        try:
            sent = await self._schedulers[0].run_once()
            if sent:
                logger.info(f"Posted {sent.url or sent.id}")
        finally:
            await channel.stop()
            self.db.close()

    async def stop(self) -> None:
        logger.info("courier stopping...")
        for scheduler in self._schedulers:
            scheduler.stop()
        for task in self._tasks:
            task.cancel()
        for name, channel in self._channels.items():
            try:
                await channel.stop()
            except Exception as e:
                logger.error(f"Error stopping {name}: {e}")
        self.db.close()
        logger.info("courier stopped")

    async def _start_channel(self, name: str, channel) -> None:
        try:
            await channel.start()
        except Exception as e:
            logger.error(f"Failed to start {name}: {e}")


def _print_usage() -> None:
    print("Usage:")
    print("  courier run [config.yaml]    start chat handling and scheduled posting")
    print("  courier post [config.yaml]   generate and send one feed post")


def main():
    """CLI entry point."""
    args = sys.argv[1:]
    if not args or args[0] in {"-h", "--help", "help"}:
        _print_usage()
        return
    command = args[0]
    if command not in {"run", "post"}:
        _print_usage()
        raise SystemExit(2)

    config_path = args[1] if len(args) > 1 else "config.yaml"
    app = Courier(config_path)
    setup_logging(app.config.log_level, app.config.log_file)

    if command == "post":
        asyncio.run(app.post_once())
        return

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown():
        logger.info("Shutdown signal received")
        loop.create_task(app.stop())

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        loop.run_until_complete(app.stop())
    finally:
        loop.close()


if __name__ == "__main__":
    main()
