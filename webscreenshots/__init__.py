"""
__init__.py for the webscreenshots package.

The package captures screenshots of a web site across viewports and routes,
optionally discovering routes by crawling the site's internal links first.
The pieces are laid out one concern per module:

- config / models: layered configuration and its validation rules
- routes: grouping of dynamic route families (e.g. /products/:dynamic)
- crawl: breadth-first discovery of same-origin pages
- auth: authentication before crawling and capturing
- capture: the top-level orchestration of a run
- browser: the Playwright-backed browser service
- main: the command-line entry point
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
