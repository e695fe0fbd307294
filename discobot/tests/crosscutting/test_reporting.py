import json
import os
import shutil
import tempfile
from datetime import datetime, timezone
from unittest.mock import Mock

from discobot.crosscutting.reporting import (
    CompositeResultSink, CrawlReport, JsonReportSink, LoggingResultSink, compile_result_string,
)
from discobot.domain.entities import Category


def test_compile_result_string():
    counts = {Category.ALBUM: 10, Category.SINGLE: 2}

    assert compile_result_string(counts) == "12 new songs added! [10 Album / 2 Single]"


def test_compile_result_string_singular_and_category_order():
    assert compile_result_string({Category.EP: 1}) == "1 new song added! [1 EP]"
    counts = {Category.APPEARS_ON: 1, Category.REMIX: 2}
    assert compile_result_string(counts) == "3 new songs added! [2 Remix / 1 Appears On]"


def test_compile_result_string_nothing_added():
    assert compile_result_string({}) is None
    assert compile_result_string(None) is None
    assert compile_result_string({Category.ALBUM: 0}) is None


def test_crawl_report_serialization():
    finished = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    report = CrawlReport(crawl_id="crawl_1", finished_at=finished, counts={Category.LIVE: 3})

    data = report.to_json()

    assert data == {
        "crawlId": "crawl_1",
        "finishedAt": "2024-06-01T12:00:00+00:00",
        "counts": {"live": 3},
        "totalAdded": 3,
        "summary": "3 new songs added! [3 Live]",
    }


class TestJsonReportSink:
    """Tests for the JSON report sink."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.sink = JsonReportSink(os.path.join(self.temp_dir, 'reports'))

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_publish_writes_one_file_per_crawl(self):
        self.sink.publish({Category.ALBUM: 4}, crawl_id="crawl_abc")

        path = os.path.join(self.temp_dir, 'reports', 'crawl_abc.json')
        with open(path) as f:
            data = json.load(f)
        assert data["crawlId"] == "crawl_abc"
        assert data["counts"] == {"album": 4}
        assert data["summary"] == "4 new songs added! [4 Album]"

    def test_publish_without_crawl_id(self):
        self.sink.publish({Category.SINGLE: 1})

        assert os.listdir(os.path.join(self.temp_dir, 'reports')) == ['crawl.json']


def test_logging_sink_logs_summary():
    log = Mock()

    LoggingResultSink(log).publish({Category.ALBUM: 2})

    log.info.assert_called_once_with("2 new songs added! [2 Album]")


def test_composite_sink_isolates_failures():
    failing = Mock()
    failing.publish.side_effect = IOError("disk full")
    working = Mock()

    CompositeResultSink(failing, working).publish({Category.ALBUM: 1}, crawl_id="c1")

    working.publish.assert_called_once_with({Category.ALBUM: 1}, crawl_id="c1")
