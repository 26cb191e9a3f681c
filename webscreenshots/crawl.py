import logging
from collections import deque
from typing import Deque, List, Optional, Set
from urllib.parse import urlparse

from .browser import BrowserService
from .models import CrawlOptions, RetryOptions
from .retry import retry
from .routes import UrlRoutesAnalyzer
from .urls import is_same_origin, normalize_route, with_root_path

logger = logging.getLogger(__name__)


def is_excluded(url: str, exclude_routes: List[str]) -> bool:
    path = urlparse(url).path
    return any(path.startswith(prefix) for prefix in exclude_routes)


async def crawl_site(
    browser: BrowserService,
    start_url: str,
    crawl_options: Optional[CrawlOptions],
    retry_options: RetryOptions,
) -> List[str]:
    """
    BFS-crawl from 'start_url' and return every page that was fetched.

    - only same-origin links are enqueued
    - pages under an excluded path prefix are never fetched
    - once a dynamic route group (e.g. /products/:dynamic) holds
      dynamic_routes_limit pages, further members are skipped unfetched
    - stops when the queue is empty or crawl_limit pages were visited
    - a page whose links can't be extracted after all retries is dropped and
      its branch is not expanded
    """
    crawl_options = crawl_options or CrawlOptions()
    start_url = with_root_path(start_url)
    crawl_limit = crawl_options.crawl_limit
    dynamic_limit = crawl_options.dynamic_routes_limit
    # '/' normalizes to '' which would exclude everything
    exclude_routes = [
        route
        for route in (normalize_route(r) for r in crawl_options.exclude_routes or [])
        if route
    ]

    logger.info(f"Crawling {start_url}")

    visited: Set[str] = set()
    order: List[str] = []
    queue: Deque[str] = deque([start_url])
    # everything ever enqueued, so the queue holds each URL at most once and a
    # page that exhausted its retries is not fetched again when linked later
    discovered: Set[str] = {start_url}
    analyzer = UrlRoutesAnalyzer()

    while queue and (crawl_limit is None or len(visited) < crawl_limit):
        url = queue.popleft()
        if url in visited:
            continue

        if is_excluded(url, exclude_routes):
            logger.debug(f"Skipping (excluded) - {url}")
            continue

        if dynamic_limit is not None:
            info = analyzer.get_group_info(url)
            if info and info.count >= dynamic_limit:
                logger.info(f"Skipping (group limit reached for {info.group_pattern}) - {url}")
                continue

        outcome = await retry(
            lambda: browser.extract_links(url),
            retry_options,
            f"crawl {url}",
        )
        if not outcome.succeeded:
            continue

        visited.add(url)
        order.append(url)
        analyzer.add_urls([url])
        if crawl_limit:
            logger.info(f"Found ({len(visited)}/{crawl_limit}) - {url}")
        else:
            logger.info(f"Found ({len(visited)}) - {url}")

        for link in outcome.value or []:
            if is_same_origin(start_url, link) and link not in discovered:
                discovered.add(link)
                queue.append(link)

    logger.info(f"Crawl complete for {start_url}: {len(visited)} page(s).")
    return order
