"""Main entry point for claimwatch."""
import asyncio
import sys

from loguru import logger

from claimwatch.agent.action_dispatcher import ActionDispatcher
from claimwatch.browser.cdp_tree import CDPTreeProvider
from claimwatch.browser.change_watcher import ContentChangeWatcher
from claimwatch.browser.engine import BrowserEngine
from claimwatch.config import load_config
from claimwatch.matching.criteria import CriteriaStore
from claimwatch.matching.matcher import TreeMatcher
from claimwatch.notifications.status import StatusNotifier
from claimwatch.session.event_gate import EventGate
from claimwatch.session.search_controller import SearchController
from claimwatch.utils.logging_config import setup_logging
from claimwatch.utils.preferences import PreferenceStore


async def _start_browser(config) -> BrowserEngine:
    engine = BrowserEngine()
    if config.cdp_url:
        await engine.connect_cdp(config.cdp_url)
    else:
        await engine.launch(headless=config.headless)
    if config.target_url:
        await engine.navigate(config.target_url)
    logger.info(f"Watching {engine.url or '<blank page>'}")
    return engine


async def main():
    """Main application entry point."""
    config = load_config()
    setup_logging(config)
    logger.info("Starting claimwatch")

    engine = None
    watcher = None
    provider = None
    try:
        engine = await _start_browser(config)
        provider = CDPTreeProvider(engine.page)

        preferences = PreferenceStore(default_restrict=config.restrict_to_target_app)
        store = CriteriaStore()
        gate = EventGate.from_settings(
            config,
            provider,
            TreeMatcher.from_settings(config),
            ActionDispatcher.from_settings(config),
            store,
            restrict_to_target_app=preferences.get_restrict_to_target_app(),
        )
        notifier = StatusNotifier(
            history=config.notification_history,
            currency_marker=config.currency_marker,
        )
        controller = SearchController(
            store,
            gate,
            notifier,
            capability=provider.is_available,
            poll_interval=config.poll_interval,
            preferences=preferences,
        )

        watcher = ContentChangeWatcher(engine.page, gate)
        await watcher.start()

        from web.server import create_app
        app = create_app(config, controller, notifier, preferences)

        import uvicorn
        logger.info(f"claimwatch API -> http://{config.web_host}:{config.web_port}")

        config_uv = uvicorn.Config(
            app,
            host=config.web_host,
            port=config.web_port,
            log_level="warning",
            loop="asyncio",
        )
        server = uvicorn.Server(config_uv)
        await server.serve()

    except Exception:
        logger.exception("Fatal error during startup")
        raise
    finally:
        if watcher is not None:
            await watcher.stop()
        if provider is not None:
            await provider.close()
        if engine is not None:
            await engine.close()


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception:
        logger.exception("Application failed to start")
        sys.exit(1)
