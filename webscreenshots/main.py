import argparse
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv

from .browser import PlaywrightBrowserService
from .capture import capture_screenshots
from .config import clean_object, get_config
from .errors import ConfigError

"""
Command-line entry point.

Every configuration field except authentication has a flag; flags override
environment variables, which override the config file, which overrides the
built-in defaults. Authentication is configured in the file or environment only.

Examples:
    webscreenshots --url https://example.com
    webscreenshots --url https://example.com --crawl --crawl-limit 50 --dynamic-routes-limit 3
    webscreenshots --config webscreenshots.yaml --viewport mobile:390x844@2 --viewport desktop:1920x1080
"""

logger = logging.getLogger(__name__)

VIEWPORT_PATTERN = re.compile(
    r"^(?P<name>[^:]+):(?P<width>\d+)x(?P<height>\d+)(?:@(?P<scale>\d+(?:\.\d+)?))?$"
)


def setup_logger(logfile_path: Optional[str] = None, verbose: bool = False) -> None:
    """
    Configure the root logger to output to console and, if given, to a logfile.
    Overwrites the logfile if it exists.
    """
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("[%(asctime)s] %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Clear existing handlers if any
    root_logger.handlers = []
    root_logger.addHandler(console_handler)

    if logfile_path:
        file_handler = logging.FileHandler(logfile_path, mode="w", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def parse_viewport(value: str) -> Dict[str, Any]:
    """'mobile:390x844@2' -> {'name': 'mobile', 'width': 390, 'height': 844, 'deviceScaleFactor': 2.0}"""
    match = VIEWPORT_PATTERN.match(value.strip())
    if not match:
        raise argparse.ArgumentTypeError(
            f"invalid viewport '{value}', expected NAME:WIDTHxHEIGHT[@SCALE]"
        )
    viewport: Dict[str, Any] = {
        "name": match.group("name"),
        "width": int(match.group("width")),
        "height": int(match.group("height")),
    }
    if match.group("scale"):
        viewport["deviceScaleFactor"] = float(match.group("scale"))
    return viewport


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="webscreenshots",
        description=(
            "Capture screenshots of a website across viewports and routes, optionally crawling it for routes first."
        ),
    )
    parser.add_argument("--url", help="Base URL of the site to capture.")
    parser.add_argument(
        "--config",
        help="Config file (JSON, YAML or Python). Defaults to webscreenshots.json/.yaml/.yml/.config.py in the working directory.",
    )
    parser.add_argument("--output-dir", help="Directory screenshots are written to.")
    parser.add_argument(
        "--output-pattern",
        help="Path template, placeholders: {host} {viewport} {route} {ext} {timestamp}.",
    )
    parser.add_argument("--routes", nargs="+", help="Routes to capture, e.g. / /about.")

    crawl = parser.add_argument_group("crawling")
    crawl.add_argument(
        "--crawl",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Discover routes by following internal links.",
    )
    crawl.add_argument("--crawl-limit", type=int, help="Maximum number of pages to crawl.")
    crawl.add_argument("--exclude-routes", nargs="+", help="Path prefixes the crawler skips.")
    crawl.add_argument(
        "--dynamic-routes-limit",
        type=int,
        help="Maximum pages crawled per dynamic route group (e.g. /products/:id).",
    )

    capture = parser.add_argument_group("capture")
    capture.add_argument(
        "--full-page",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Capture the full scrollable page.",
    )
    capture.add_argument("--image-type", choices=["png", "jpeg", "webp"])
    capture.add_argument("--quality", type=int, help="Image quality 0-100 (jpeg/webp).")
    capture.add_argument(
        "--viewport",
        dest="viewports",
        action="append",
        type=parse_viewport,
        help="Viewport as NAME:WIDTHxHEIGHT[@SCALE]. Repeat for several.",
    )

    browser = parser.add_argument_group("browser")
    browser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run the browser headless.",
    )
    browser.add_argument("--browser-args", nargs="+", help="Extra Chromium arguments.")

    retry = parser.add_argument_group("retries")
    retry.add_argument("--max-attempts", type=int, help="Attempts per page before giving up.")
    retry.add_argument("--delay-ms", type=int, help="Pause between attempts in milliseconds.")

    parser.add_argument("--log-file", help="Also write the log to this file.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed flags onto the camelCase config shape; unset flags are left out."""
    overrides = {
        "url": args.url,
        "outputDir": args.output_dir,
        "outputPattern": args.output_pattern,
        "routes": args.routes,
        "viewports": args.viewports,
        "crawl": args.crawl,
        "crawlOptions": {
            "crawlLimit": args.crawl_limit,
            "excludeRoutes": args.exclude_routes,
            "dynamicRoutesLimit": args.dynamic_routes_limit,
        },
        "captureOptions": {
            "fullPage": args.full_page,
            "imageType": args.image_type,
            "quality": args.quality,
        },
        "browserOptions": {
            "headless": args.headless,
            "args": args.browser_args,
        },
        "retryOptions": {
            "maxAttempts": args.max_attempts,
            "delayMs": args.delay_ms,
        },
    }
    return clean_object(overrides) or {}


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point:
    - resolve config (defaults < file < env < flags), fail fast on config errors
    - capture every viewport x route, exiting 1 if anything failed
    """
    args = parse_args(argv)
    setup_logger(args.log_file, args.verbose)
    load_dotenv()

    try:
        config = get_config(build_overrides(args), args.config)
    except ConfigError as e:
        logger.error(str(e))
        raise SystemExit(1)

    if not config.url:
        logger.error(
            "Missing required option 'url'. Pass --url, set WEBSCREENSHOTS__URL or add 'url' to the config file."
        )
        raise SystemExit(1)

    browser = PlaywrightBrowserService(config.browser_options)
    summary = asyncio.run(capture_screenshots(config, browser))
    raise SystemExit(summary.exit_code)


if __name__ == "__main__":
    main()
