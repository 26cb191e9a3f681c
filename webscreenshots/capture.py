import datetime
import logging
import sys
from dataclasses import dataclass
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from .auth import authenticate
from .browser import BrowserService
from .crawl import crawl_site
from .models import Config, Viewport
from .retry import retry
from .urls import generate_file_path, normalize_route, normalize_url

logger = logging.getLogger(__name__)


@dataclass
class CaptureSummary:
    successes: int
    failures: int

    @property
    def exit_code(self) -> int:
        return 1 if self.failures else 0


def unique_routes(routes: Iterable[str]) -> List[str]:
    """Normalize routes and drop duplicates, keeping first-seen order."""
    return list(dict.fromkeys(normalize_route(route) for route in routes))


async def release_browser(browser: BrowserService) -> None:
    """Close the browser; a failed release is fatal for the whole run."""
    logger.info("Cleaning up...")
    try:
        await browser.cleanup()
    except Exception as e:
        logger.error("Failed during cleanup.")
        logger.error(f"Reason: {e}")
        sys.exit(1)
    logger.info("Cleanup complete.")


def print_summary(successes: int, failures: int) -> CaptureSummary:
    """Log the tally and exit with status 1 if any capture failed."""
    summary = CaptureSummary(successes=successes, failures=failures)
    logger.info("Summary")
    logger.info("---------------------")
    logger.info(f"Success: {successes}")
    logger.info(f"Failures: {failures}")
    if failures:
        sys.exit(summary.exit_code)
    logger.info("All screenshots captured successfully!")
    return summary


async def capture_screenshots(
    config: Config,
    browser: BrowserService,
    now: Optional[datetime.datetime] = None,
) -> CaptureSummary:
    """
    Run one capture pass:
    authenticate (if configured) => crawl (if enabled) => every viewport x route
    => release the browser => summary.

    Per-capture failures are retried and counted, never raised. The run exits
    with status 1 when crawling finds nothing, when the browser can't be
    released, or when any capture failed.
    """
    base_url = normalize_url(config.url)
    routes = unique_routes(config.routes)

    if config.auth_options is not None:
        authenticated = await authenticate(browser, config.auth_options, config.retry_options)
        if not authenticated:
            # login failure is reported but does not stop the run
            logger.warning("Continuing without a confirmed authenticated session.")

    if config.crawl:
        crawled_urls = await crawl_site(
            browser,
            base_url,
            config.crawl_options,
            config.retry_options,
        )
        if not crawled_urls:
            logger.error(f"Crawling {base_url} returned no pages. Is the site reachable?")
            await release_browser(browser)
            sys.exit(1)
        routes = unique_routes(routes + [urlparse(url).path for url in crawled_urls])

    timestamp = now or datetime.datetime.now(datetime.timezone.utc)
    capture_options = config.capture_options
    successes = 0
    failures = 0

    for viewport in config.viewports:
        logger.info(f"Viewport: {viewport.name} ({viewport.width}x{viewport.height})")
        for route in routes:
            full_url = urljoin(base_url, route)
            output_path = generate_file_path(
                url=full_url,
                viewport=viewport.name,
                extension=capture_options.image_type,
                pattern=config.output_pattern,
                output_dir=config.output_dir,
                timestamp=timestamp,
            )
            if await capture_one(browser, full_url, output_path, viewport, config):
                successes += 1
            else:
                failures += 1

    await release_browser(browser)
    return print_summary(successes, failures)


async def capture_one(
    browser: BrowserService,
    url: str,
    output_path: str,
    viewport: Viewport,
    config: Config,
) -> bool:
    logger.info(f"Capturing: {url}")
    outcome = await retry(
        lambda: browser.capture_screenshot(url, output_path, config.capture_options, viewport),
        config.retry_options,
        f"capture {url}",
    )
    if outcome.succeeded:
        logger.info(f"Saved {url} => {output_path}")
    return outcome.succeeded
