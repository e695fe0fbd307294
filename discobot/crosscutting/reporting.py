import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from discobot.domain.entities import Category, CATEGORY_ORDER


logger = logging.getLogger(__name__)


def compile_result_string(counts: Optional[Dict[Category, int]]) -> Optional[str]:
    """Summarize added songs, e.g. "12 new songs added! [10 Album / 2 Single]".

    Returns None if nothing was added.
    """
    if not counts:
        return None
    total = sum(counts.values())
    if total <= 0:
        return None
    parts = [
        f"{counts[c]} {c.display_name}"
        for c in CATEGORY_ORDER if counts.get(c, 0) > 0
    ]
    return f"{total} new song{'s' if total > 1 else ''} added! [{' / '.join(parts)}]"


@dataclass
class CrawlReport:
    """Report of one crawl: added tracks per category."""

    crawl_id: str
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    counts: Dict[Category, int] = field(default_factory=dict)

    @property
    def total_added(self) -> int:
        return sum(self.counts.values())

    def to_json(self) -> Dict[str, Any]:
        """Serialize report to JSON."""
        return {
            "crawlId": self.crawl_id,
            "finishedAt": self.finished_at.isoformat(),
            "counts": {c.value: n for c, n in self.counts.items()},
            "totalAdded": self.total_added,
            "summary": compile_result_string(self.counts),
        }


class LoggingResultSink:
    """Writes the crawl summary to the log."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def publish(self, counts: Dict[Category, int], crawl_id: Optional[str] = None) -> None:
        summary = compile_result_string(counts)
        if summary:
            self.log.info(summary)


class JsonReportSink:
    """Saves one JSON report per crawl into a directory."""

    def __init__(self, report_dir: str = "reports"):
        self.report_dir = report_dir

    def _get_report_path(self, crawl_id: str) -> str:
        return os.path.join(self.report_dir, f"{crawl_id}.json")

    def publish(self, counts: Dict[Category, int], crawl_id: Optional[str] = None) -> None:
        report = CrawlReport(crawl_id=crawl_id or "crawl", counts=dict(counts))
        os.makedirs(self.report_dir, exist_ok=True)
        path = self._get_report_path(report.crawl_id)
        with open(path, 'w') as f:
            json.dump(report.to_json(), f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved crawl report to {path}")


class CompositeResultSink:
    """Publishes to several sinks; a failing sink does not stop the others."""

    def __init__(self, *sinks):
        self.sinks = list(sinks)

    def publish(self, counts: Dict[Category, int], crawl_id: Optional[str] = None) -> None:
        for sink in self.sinks:
            try:
                sink.publish(counts, crawl_id=crawl_id)
            except Exception as e:
                logger.warning(f"{type(sink).__name__} failed: {e}")
