"""
__init__.py for the tests directory.

Marks 'tests' as a package so test modules can share helpers such as
tests.fakes, which builds mock browser services and validated configs.
"""

__all__ = []
