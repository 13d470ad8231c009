"""
Open a page in a captured browser and log analytics events as they arrive.

    xray-browse https://example.com --seconds 30
"""

from __future__ import annotations

import argparse
import asyncio

import dotenv

from analytics_xray import config
from analytics_xray.host.playwright_hook import CaptureBrowser
from analytics_xray.models.messages import EventsCapturedMessage, Notification
from analytics_xray.service import CaptureService
from analytics_xray.utils import logger

log = logger.create_logger("Browse")


def _print_events(message: Notification) -> None:
    if isinstance(message, EventsCapturedMessage):
        for event in message.events:
            log.success(f"{event.type}: {event.name}", {"tabId": event.tab_id, "provider": event.provider})


async def browse(url: str, seconds: float, headless: bool) -> int:
    """Capture events on *url* for *seconds*; returns the number captured."""
    service = CaptureService.from_settings(config.get_settings())
    service.boot()
    service.notifier.subscribe(_print_events)
    browser = CaptureBrowser(service)
    try:
        await browser.launch(headless=headless)
        tab_id = await browser.open(url)
        await asyncio.sleep(seconds)
        count = service.get_event_count(tab_id)
        log.info("Capture finished", {"tabId": tab_id, "events": count})
        return count
    finally:
        await browser.close()
        service.close()


def main() -> None:
    dotenv.load_dotenv()
    parser = argparse.ArgumentParser(description="Capture analytics events sent by a web page.")
    parser.add_argument("url")
    parser.add_argument("--seconds", type=float, default=15.0, help="How long to keep the page open")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    args = parser.parse_args()

    logger.open_log_file()
    try:
        asyncio.run(browse(args.url, args.seconds, headless=not args.headed))
    finally:
        logger.close_log_file()


if __name__ == "__main__":
    main()
