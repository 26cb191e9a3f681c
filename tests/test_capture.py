import asyncio
import datetime
import logging
import os
from unittest.mock import AsyncMock, patch

import pytest

from webscreenshots.capture import capture_screenshots, print_summary, unique_routes
from tests.fakes import make_browser, make_config

NOW = datetime.datetime(2025, 8, 5, 12, 34, 56, 789000, tzinfo=datetime.timezone.utc)


@pytest.fixture(autouse=True)
def mock_pause():
    with patch("webscreenshots.retry.pause", new_callable=AsyncMock) as paused:
        yield paused


def run_capture(config, browser, now=NOW):
    return asyncio.run(capture_screenshots(config, browser, now=now))


def captured_paths(browser):
    return [c.args[1] for c in browser.capture_screenshot.await_args_list]


def test_captures_base_url_without_crawling(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    browser = make_browser()
    config = make_config({"crawl": False})

    summary = run_capture(config, browser)

    assert summary.successes == 1
    assert summary.failures == 0
    assert summary.exit_code == 0
    browser.extract_links.assert_not_awaited()
    browser.capture_screenshot.assert_awaited_once()
    browser.cleanup.assert_awaited_once()
    assert "All screenshots captured successfully!" in caplog.text


def test_output_path_follows_pattern() -> None:
    browser = make_browser()
    run_capture(make_config(), browser)

    url, output_path, capture_options, viewport = browser.capture_screenshot.await_args.args
    assert url == "https://example.com/"
    assert output_path == os.path.join(
        "screenshots", "example-com", "desktop", "example-com-desktop-home.png"
    )
    assert capture_options.image_type == "png"
    assert viewport.name == "desktop"


def test_crawled_routes_are_captured() -> None:
    browser = make_browser()
    config = make_config({"crawl": True})
    crawled = ["https://example.com/", "https://example.com/about"]

    with patch("webscreenshots.capture.crawl_site", new_callable=AsyncMock) as mock_crawl:
        mock_crawl.return_value = crawled
        summary = run_capture(config, browser)

    mock_crawl.assert_awaited_once()
    assert mock_crawl.await_args.args[1] == "https://example.com/"
    assert summary.successes == 2
    urls = [c.args[0] for c in browser.capture_screenshot.await_args_list]
    assert urls == ["https://example.com/", "https://example.com/about"]


def test_configured_routes_merge_with_crawled_routes() -> None:
    browser = make_browser()
    config = make_config({"crawl": True, "routes": ["/", "/contact/", "/about"]})

    with patch("webscreenshots.capture.crawl_site", new_callable=AsyncMock) as mock_crawl:
        mock_crawl.return_value = ["https://example.com/about/", "https://example.com/blog"]
        run_capture(config, browser)

    urls = [c.args[0] for c in browser.capture_screenshot.await_args_list]
    assert urls == [
        "https://example.com/",
        "https://example.com/contact",
        "https://example.com/about",
        "https://example.com/blog",
    ]


def test_every_viewport_times_every_route() -> None:
    browser = make_browser()
    config = make_config(
        {
            "routes": ["/", "/about"],
            "viewports": [
                {"name": "mobile", "width": 390, "height": 844, "deviceScaleFactor": 2},
                {"name": "desktop", "width": 1920, "height": 1080},
            ],
        }
    )

    summary = run_capture(config, browser)

    assert summary.successes == 4
    calls = [(c.args[3].name, c.args[0]) for c in browser.capture_screenshot.await_args_list]
    assert calls == [
        ("mobile", "https://example.com/"),
        ("mobile", "https://example.com/about"),
        ("desktop", "https://example.com/"),
        ("desktop", "https://example.com/about"),
    ]


def test_timestamp_is_fixed_for_the_whole_run() -> None:
    browser = make_browser()
    config = make_config(
        {
            "routes": ["/", "/about"],
            "outputPattern": "{timestamp}/{viewport}-{route}.{ext}",
        }
    )

    run_capture(config, browser)

    paths = captured_paths(browser)
    assert paths == [
        os.path.join("screenshots", "2025-08-05T12-34-56-789Z", "desktop-home.png"),
        os.path.join("screenshots", "2025-08-05T12-34-56-789Z", "desktop-about.png"),
    ]


def test_capture_is_retried() -> None:
    browser = make_browser()
    browser.capture_screenshot.side_effect = [RuntimeError("Temporary failure"), None]
    config = make_config({"retryOptions": {"maxAttempts": 2, "delayMs": 10}})

    summary = run_capture(config, browser)

    assert browser.capture_screenshot.await_count == 2
    assert summary.successes == 1
    assert summary.failures == 0


def test_failed_captures_exit_with_status_one(caplog: pytest.LogCaptureFixture) -> None:
    browser = make_browser()
    browser.capture_screenshot.side_effect = RuntimeError("Screenshot failed")
    config = make_config({"routes": ["/", "/about"], "retryOptions": {"maxAttempts": 2}})

    with pytest.raises(SystemExit) as exc:
        run_capture(config, browser)

    assert exc.value.code == 1
    # both routes were attempted despite the first failing
    assert browser.capture_screenshot.await_count == 4
    browser.cleanup.assert_awaited_once()
    assert "Failed to capture https://example.com/" in caplog.text
    assert "Screenshot failed" in caplog.text


def test_empty_crawl_exits_after_cleanup(caplog: pytest.LogCaptureFixture) -> None:
    browser = make_browser()
    config = make_config({"crawl": True})

    with patch("webscreenshots.capture.crawl_site", new_callable=AsyncMock) as mock_crawl:
        mock_crawl.return_value = []
        with pytest.raises(SystemExit) as exc:
            run_capture(config, browser)

    assert exc.value.code == 1
    browser.cleanup.assert_awaited_once()
    browser.capture_screenshot.assert_not_awaited()
    assert "returned no pages" in caplog.text


def test_cleanup_failure_is_fatal(caplog: pytest.LogCaptureFixture) -> None:
    browser = make_browser()
    browser.cleanup.side_effect = RuntimeError("Browser crashed")

    with pytest.raises(SystemExit) as exc:
        run_capture(make_config(), browser)

    assert exc.value.code == 1
    assert "Failed during cleanup." in caplog.text
    assert "Browser crashed" in caplog.text


def test_auth_runs_before_crawl_and_capture() -> None:
    browser = make_browser()
    config = make_config(
        {"authOptions": {"method": "cookie", "cookiesPath": "cookies.json"}}
    )

    run_capture(config, browser)

    browser.set_authentication.assert_awaited_once_with(config.auth_options)
    browser.capture_screenshot.assert_awaited_once()


def test_auth_failure_does_not_stop_capturing(caplog: pytest.LogCaptureFixture) -> None:
    browser = make_browser()
    browser.set_authentication.return_value = False
    config = make_config(
        {"authOptions": {"method": "cookie", "cookiesPath": "cookies.json"}}
    )

    summary = run_capture(config, browser)

    assert summary.successes == 1
    browser.capture_screenshot.assert_awaited_once()
    assert "Continuing without a confirmed authenticated session." in caplog.text


def test_no_auth_configured_skips_authentication() -> None:
    browser = make_browser()
    run_capture(make_config(), browser)
    browser.set_authentication.assert_not_awaited()


def test_unique_routes_keeps_first_seen_order() -> None:
    assert unique_routes(["/about/", "/", "/about", "", "/blog"]) == ["/about", "", "/blog"]


def test_print_summary(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    summary = print_summary(3, 0)
    assert summary.exit_code == 0
    assert "Success: 3" in caplog.text

    with pytest.raises(SystemExit) as exc:
        print_summary(2, 1)
    assert exc.value.code == 1
    assert "Failures: 1" in caplog.text
