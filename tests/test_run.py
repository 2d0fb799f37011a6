import asyncio
import json

import pytest

import run
import settings
from pipelines.cache import JsonCache
from pipelines.tags import TagClassifier

OFFICIAL = {
    "2025-01-10": [{
        "id": "ev1", "time": "09:00-17:00", "organization": "某公司", "location": "臺北市中山區某路100號",
        "activityDate": "2025-01-10", "center": "台北", "detailUrl": None, "rawText": "列",
    }],
}
FORUM = [{"matchDate": "1/10", "date": "2025-01-10", "rawLine": "1/10 中山某路 送電影票",
          "locationStr": "中山某路 送電影票", "images": []}]


@pytest.fixture(autouse=True)
def no_sheet(monkeypatch):
    monkeypatch.setattr(settings, "SHEET_ID", "")


def _run(tmp_path, forum, crawl, months=((2025, 1),)):
    async def fetch_forum():
        return [dict(c) for c in forum] if forum is not None else None

    clf = TagClassifier(JsonCache(tmp_path / run.TAG_CACHE), use_ocr=False)
    return asyncio.run(run.run_pipeline(list(months), tmp_path, use_geocode=False,
                                        fetch_forum=fetch_forum, crawl=crawl, classifier=clf))


def test_pipeline_writes_month_and_keeps_enrichment_when_forum_fails(tmp_path):
    async def crawl(start, end):
        assert (start, end) == ("2025/01/01", "2025/01/31")
        return json.loads(json.dumps(OFFICIAL))

    assert _run(tmp_path, FORUM, crawl) == 1
    data = json.loads((tmp_path / "bloodInfo-202501.json").read_text(encoding="utf-8"))
    ev = data["2025-01-10"][0]
    assert ev["tags"] == ["電影票"]
    assert ev["pttData"]["rawLine"] == "1/10 中山某路 送電影票"
    assert "rawText" not in ev
    assert json.loads((tmp_path / run.TAG_CACHE).read_text(encoding="utf-8")) == {
        "1/10 中山某路 送電影票": ["電影票"],
    }

    # 第二輪 PTT 抓不到，沿用上一輪的 pttData
    assert _run(tmp_path, None, crawl) == 1
    data = json.loads((tmp_path / "bloodInfo-202501.json").read_text(encoding="utf-8"))
    ev = data["2025-01-10"][0]
    assert ev["tags"] == ["電影票"]
    assert ev["pttData"]["rawLine"] == "1/10 中山某路 送電影票"

def test_failing_month_does_not_stop_the_others(tmp_path):
    async def crawl(start, end):
        if start.startswith("2025/01"):
            raise RuntimeError("boom")
        return {}

    assert _run(tmp_path, [], crawl, months=[(2025, 1), (2025, 2)]) == 0
    assert not (tmp_path / "bloodInfo-202501.json").exists()
    assert (tmp_path / "bloodInfo-202502.json").exists()

def test_parse_month():
    assert run._parse_month("2025-03") == (2025, 3)
    with pytest.raises(Exception):
        run._parse_month("2025-13")

def test_default_months_cover_current_and_next(monkeypatch):
    from datetime import date
    monkeypatch.setattr(run, "today", lambda: date(2024, 12, 5))
    assert run.default_months() == [(2024, 12), (2025, 1)]
