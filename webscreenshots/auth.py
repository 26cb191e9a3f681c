import logging
from typing import Optional, Tuple

from .browser import BrowserService
from .models import AuthOptions, RetryOptions
from .retry import retry

logger = logging.getLogger(__name__)

AUTH_METHODS: Tuple[str, ...] = ("basic", "cookie", "form", "token")

# credentials re-applied by the browser on every page load
PER_REQUEST_METHODS: Tuple[str, ...] = ("basic", "token")


def missing_auth_fields(auth_options: AuthOptions) -> Optional[str]:
    """
    Describe what the chosen method still needs, or None when complete.
    """
    method = auth_options.method
    if method == "basic":
        basic = auth_options.basic
        if not (basic and basic.username and basic.password):
            return "Missing 'username' or 'password' in basic auth configuration"
    elif method == "token":
        token = auth_options.token
        if not (token and token.header and token.value):
            return "Missing 'header' or 'value' in token auth configuration"
    elif method == "cookie":
        if not auth_options.cookies_path:
            return "Missing 'cookiesPath' in cookie auth configuration"
    elif method == "form":
        form = auth_options.form
        if not (form and form.login_url and form.inputs and form.submit):
            return "Invalid form configuration. Ensure 'loginUrl', 'inputs' and 'submit' are set"
    return None


async def authenticate(
    browser: BrowserService,
    auth_options: Optional[AuthOptions],
    retry_options: RetryOptions,
) -> bool:
    """
    Authenticate once per run.

    basic/token only arm the browser to send credentials with every page, so a
    single call is enough. cookie/form establish a session over the network and
    go through the retry policy. Returns False instead of raising: whether a
    failed login should stop the run is the caller's decision.
    """
    logger.info("Authenticating...")

    method = auth_options.method if auth_options is not None else None
    if not method:
        logger.info("No authentication method has been configured")
        return False

    if method not in AUTH_METHODS:
        logger.info(f"'{method}' is not supported")
        return False

    problem = missing_auth_fields(auth_options)
    if problem:
        logger.error(problem)
        return False

    if method in PER_REQUEST_METHODS:
        logger.info("Authentication will happen on each page")
        return await browser.set_authentication(auth_options)

    outcome = await retry(
        lambda: browser.set_authentication(auth_options),
        retry_options,
        f"authenticate ({method})",
    )
    if not outcome.succeeded:
        logger.error("Failed to authenticate")
        return False

    logger.info(f"Authenticated with '{method}'.")
    return True
