import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

"""
Grouping of crawled URLs into route families.

Sibling paths whose last segment looks like an identifier (/products/1,
/products/2, /users/3f2a...) are collapsed into one pattern such as
'/products/:dynamic' so the crawler can cap how many members of the family
it fetches. Everything else is tracked path by path.
"""

DYNAMIC_PLACEHOLDER = ":dynamic"

NUMERIC_SEGMENT = re.compile(r"^\d+$")
UUID_SEGMENT = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
MIXED_ALNUM_SEGMENT = re.compile(r"^(?=.*[a-zA-Z])(?=.*\d)[a-zA-Z0-9\-]+$")


@dataclass(frozen=True)
class RouteGroupInfo:
    group_pattern: str
    count: int


def is_dynamic_segment(segment: str) -> bool:
    """
    Heuristic: a segment is dynamic when it is purely numeric, a UUID,
    or alphanumeric with at least one letter and one digit ('abc123', 'v2-post').
    """
    if NUMERIC_SEGMENT.match(segment):
        return True
    if UUID_SEGMENT.match(segment):
        return True
    if MIXED_ALNUM_SEGMENT.match(segment):
        return True
    return False


def _path_segments(path: str) -> List[str]:
    return [seg for seg in path.split("/") if seg]


class UrlRoutesAnalyzer:
    """
    Keeps a growing set of URLs and the route groups derived from them.

    Groups are rebuilt from scratch on every add_urls() call; the crawler calls
    it once per fetched page, so simplicity wins over incremental updates.
    """

    def __init__(
        self,
        initial_urls: Iterable[str] = (),
        is_dynamic: Callable[[str], bool] = is_dynamic_segment,
    ) -> None:
        self._is_dynamic = is_dynamic
        self._urls: List[str] = []
        self._group_counts: Dict[str, int] = {}
        self.add_urls(initial_urls)

    @property
    def groups(self) -> Dict[str, int]:
        """Snapshot of pattern -> member count."""
        return dict(self._group_counts)

    def add_urls(self, urls: Iterable[str]) -> None:
        urls = list(urls)
        # validate everything before touching state
        for url in urls:
            self._extract_path(url)
        for url in urls:
            if url not in self._urls:
                self._urls.append(url)
        self._rebuild_groups()

    def get_group_info(self, url: str) -> Optional[RouteGroupInfo]:
        """
        Return the first stored group whose pattern matches 'url' positionally,
        with ':dynamic' matching any single segment. None if nothing matches.
        """
        segments = _path_segments(self._extract_path(url))
        for pattern, count in self._group_counts.items():
            if self._matches(segments, pattern):
                return RouteGroupInfo(group_pattern=pattern, count=count)
        return None

    def _rebuild_groups(self) -> None:
        self._group_counts.clear()

        by_length: Dict[int, List[List[str]]] = {}
        for url in self._urls:
            segments = _path_segments(self._extract_path(url))
            by_length.setdefault(len(segments), []).append(segments)

        if 0 in by_length:
            self._group_counts["/"] = len(by_length[0])

        for length, members in by_length.items():
            if length == 0:
                continue

            by_prefix: Dict[str, List[List[str]]] = {}
            for segments in members:
                prefix = "/".join(segments[:-1])
                by_prefix.setdefault(prefix, []).append(segments)

            for prefix, group in by_prefix.items():
                last_segments = [segments[-1] for segments in group]
                distinct = set(last_segments)
                all_dynamic = all(self._is_dynamic(seg) for seg in last_segments)
                distinct_dynamic = len(distinct) > 1 and all(
                    self._is_dynamic(seg) for seg in distinct
                )

                if all_dynamic or distinct_dynamic:
                    pattern = ("/" + prefix if prefix else "") + "/" + DYNAMIC_PLACEHOLDER
                    self._group_counts[pattern] = len(group)
                else:
                    for segments in group:
                        full_path = "/" + "/".join(segments)
                        self._group_counts[full_path] = (
                            self._group_counts.get(full_path, 0) + 1
                        )

    @staticmethod
    def _matches(segments: List[str], pattern: str) -> bool:
        pattern_segments = _path_segments(pattern)
        if len(segments) != len(pattern_segments):
            return False
        for pattern_seg, seg in zip(pattern_segments, segments):
            if pattern_seg == DYNAMIC_PLACEHOLDER:
                continue
            if pattern_seg != seg:
                return False
        return True

    @staticmethod
    def _extract_path(url: str) -> str:
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValueError(f"Invalid URL: {url}") from e
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Invalid URL: {url}")
        return parsed.path
