import io
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup
from PIL import Image
from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .models import AuthOptions, BrowserOptions, CaptureOptions, FormAuth, Viewport
from .urls import with_root_path

logger = logging.getLogger(__name__)

# keys Playwright accepts in BrowserContext.add_cookies()
COOKIE_FIELDS = ("name", "value", "url", "domain", "path", "expires", "httpOnly", "secure", "sameSite")
SAME_SITE_VALUES = {"strict": "Strict", "lax": "Lax", "none": "None"}


class BrowserService(ABC):
    """
    What the crawl, capture and auth code needs from a browser.
    Every method may raise on navigation or timeout failures.
    """

    @abstractmethod
    async def extract_links(self, url: str) -> List[str]:
        """Absolute URLs of the hyperlinks found on 'url'."""

    @abstractmethod
    async def capture_screenshot(
        self,
        url: str,
        output_path: str,
        capture_options: CaptureOptions,
        viewport: Optional[Viewport] = None,
    ) -> None:
        """Load 'url' and write an image to 'output_path'."""

    @abstractmethod
    async def set_authentication(self, auth_options: Optional[AuthOptions] = None) -> bool:
        """Arm per-request credentials or establish a session; True on success."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release the browser. Safe to call when nothing was started."""


def normalize_cookie(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert an exported cookie (Puppeteer / browser-extension style) into the
    shape Playwright expects: known keys only, sameSite capitalised, no session
    expiry of -1.
    """
    cookie = {key: raw[key] for key in COOKIE_FIELDS if key in raw}
    same_site = cookie.get("sameSite")
    if isinstance(same_site, str):
        normalized = SAME_SITE_VALUES.get(same_site.lower())
        if normalized:
            cookie["sameSite"] = normalized
        else:
            cookie.pop("sameSite")
    if cookie.get("expires") in (None, -1):
        cookie.pop("expires", None)
    if "url" not in cookie and "path" not in cookie and "domain" in cookie:
        cookie["path"] = "/"
    return cookie


def parse_links(html: str, page_url: str) -> List[str]:
    """
    Resolve every a[href] against 'page_url'. Fragments are dropped and only
    http(s) links are kept, so mailto:, tel: and javascript: never reach the crawler.
    """
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    seen = set()
    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not href:
            continue
        absolute, _ = urldefrag(urljoin(page_url, href))
        if urlparse(absolute).scheme not in ("http", "https"):
            continue
        absolute = with_root_path(absolute)
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


class PlaywrightBrowserService(BrowserService):
    """
    One Chromium instance and one session context, created on first use.

    The session context carries cookies established by cookie or form auth.
    Each screenshot runs in a short-lived context cloned from the session
    storage state so viewport and device scale factor can vary per capture.
    """

    def __init__(
        self,
        browser_options: BrowserOptions,
        navigation_timeout_ms: int = 30000,
    ) -> None:
        self.browser_options = browser_options
        self.navigation_timeout_ms = navigation_timeout_ms
        self.auth_options: Optional[AuthOptions] = None
        self.authenticate_each_page = False
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._session: Optional[BrowserContext] = None

    async def _ensure_session(self) -> BrowserContext:
        if self._browser is None:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.browser_options.headless,
                args=self.browser_options.args or [],
            )
            logger.debug("Browser launched.")
        if self._session is None:
            self._session = await self._browser.new_context(**self._credentials_args())
        return self._session

    def _credentials_args(self) -> Dict[str, Any]:
        """Context kwargs for basic auth; Playwright answers the 401 challenge with them."""
        if not self.authenticate_each_page or self.auth_options is None:
            return {}
        basic = self.auth_options.basic
        if self.auth_options.method == "basic" and basic:
            return {"http_credentials": {"username": basic.username, "password": basic.password}}
        return {}

    def _auth_headers(self) -> Dict[str, str]:
        if not self.authenticate_each_page or self.auth_options is None:
            return {}
        if self.auth_options.method == "token" and self.auth_options.token:
            return {self.auth_options.token.header: self.auth_options.token.value}
        return {}

    async def _open_page(self, context: BrowserContext) -> Page:
        page = await context.new_page()
        page.set_default_navigation_timeout(self.navigation_timeout_ms)
        headers = self._auth_headers()
        if headers:
            await page.set_extra_http_headers(headers)
        return page

    async def extract_links(self, url: str) -> List[str]:
        session = await self._ensure_session()
        page = await self._open_page(session)
        try:
            await page.goto(url, wait_until="networkidle")
            html = await page.content()
            return parse_links(html, page.url)
        finally:
            await page.close()

    async def capture_screenshot(
        self,
        url: str,
        output_path: str,
        capture_options: CaptureOptions,
        viewport: Optional[Viewport] = None,
    ) -> None:
        session = await self._ensure_session()
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        context_args: Dict[str, Any] = {"storage_state": await session.storage_state()}
        if viewport:
            context_args["viewport"] = {"width": viewport.width, "height": viewport.height}
            if viewport.device_scale_factor:
                context_args["device_scale_factor"] = viewport.device_scale_factor
        context_args.update(self._credentials_args())

        context = await self._browser.new_context(**context_args)
        try:
            page = await self._open_page(context)
            await page.goto(url, wait_until="networkidle")
            await self._write_screenshot(page, output_path, capture_options)
        finally:
            await context.close()

    async def _write_screenshot(
        self, page: Page, output_path: str, capture_options: CaptureOptions
    ) -> None:
        if capture_options.image_type == "webp":
            # Playwright only encodes png/jpeg
            data = await page.screenshot(full_page=capture_options.full_page, type="png")
            with Image.open(io.BytesIO(data)) as image:
                save_args: Dict[str, Any] = {}
                if capture_options.quality is not None:
                    save_args["quality"] = capture_options.quality
                image.save(output_path, "WEBP", **save_args)
            return

        screenshot_args: Dict[str, Any] = {
            "path": output_path,
            "full_page": capture_options.full_page,
            "type": capture_options.image_type,
        }
        if capture_options.image_type == "jpeg" and capture_options.quality is not None:
            screenshot_args["quality"] = capture_options.quality
        await page.screenshot(**screenshot_args)

    async def set_authentication(self, auth_options: Optional[AuthOptions] = None) -> bool:
        self.auth_options = auth_options
        self.authenticate_each_page = auth_options is not None and auth_options.method in (
            "basic",
            "token",
        )
        if auth_options is None:
            return True
        if self.authenticate_each_page:
            if auth_options.method == "basic" and self._session is not None:
                # recreated with http_credentials on next use
                await self._session.close()
                self._session = None
            logger.info(f"{auth_options.method.capitalize()} credentials will be sent with every page.")
            return True
        if auth_options.method == "cookie":
            return await self._authenticate_with_cookies(auth_options.cookies_path or "")
        if auth_options.method == "form" and auth_options.form is not None:
            return await self._authenticate_with_form(auth_options.form)
        return False

    async def _authenticate_with_cookies(self, cookies_path: str) -> bool:
        if not os.path.exists(cookies_path):
            logger.warning(f"Cookie file not found: {cookies_path}")
            return False

        try:
            with open(cookies_path, "r", encoding="utf-8") as f:
                cookies = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to parse cookies from {cookies_path}: {e}")
            return False

        if not isinstance(cookies, list) or not cookies:
            logger.warning(f"No cookies found in {cookies_path}.")
            return False

        session = await self._ensure_session()
        await session.add_cookies([normalize_cookie(c) for c in cookies])
        applied = await session.cookies()
        if len(applied) < len(cookies):
            logger.error(
                f"Failed to set cookies: provided {len(cookies)}, but {len(applied)} were applied."
            )
            return False

        logger.info(f"Successfully applied {len(applied)} cookies.")
        return True

    async def _authenticate_with_form(self, form: FormAuth) -> bool:
        session = await self._ensure_session()
        page = await self._open_page(session)
        try:
            await page.goto(form.login_url, wait_until="networkidle")

            for selector, value in form.inputs.items():
                await page.wait_for_selector(selector, timeout=form.timeout_ms)
                await page.fill(selector, value)

            try:
                async with page.expect_navigation(
                    wait_until="networkidle", timeout=form.timeout_ms
                ):
                    await page.click(form.submit)
            except PlaywrightTimeoutError:
                logger.warning("No navigation after login attempt.")

            if form.success_selector and await page.query_selector(form.success_selector):
                logger.info("Success element found. Authentication succeeded.")
                return True

            if form.error_selector and await page.query_selector(form.error_selector):
                logger.error("Login error element detected.")
                return False

            if page.url != form.login_url:
                logger.info("Page redirect detected, authentication likely succeeded.")
                return True

            logger.warning(
                "Login may not have succeeded (URL unchanged and no success marker found)."
            )
            return False
        finally:
            await page.close()

    async def cleanup(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
