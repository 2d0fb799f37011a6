# scrapers/ptt.py  — PTT Lifeismoney 捐血贈品整理文
import asyncio
import re
from datetime import date

import httpx
from bs4 import BeautifulSoup, NavigableString, Comment, Tag

from scrapers.base import fetch_html, fetch_with_retry
from pipelines.normalize import infer_date
import settings

SOURCE = "ptt"

DATE_RE    = re.compile(r"(\d{1,2})/(\d{1,2})(?!\d)")
WEEKDAY_RE = re.compile(r"^\s*[(（][^)）]{0,8}[)）]")
SEP_RE     = re.compile(r"^\s*([-~～、,，&＆]|\s)\s*")
RANGE_SEPS = {"-", "~", "～"}
LEAD_RE    = re.compile(r"^[\s\-~～:：、,，]+")
IMAGE_RE   = re.compile(r"\.(jpe?g|png|gif|webp)(\?.*)?$", re.I)
WORD_RE    = re.compile(r"[\u4e00-\u9fffA-Za-z0-9]")

MAX_RANGE_DAYS = 7

def is_image_link(href: str | None) -> bool:
    if not href:
        return False
    return bool(IMAGE_RE.search(href)) or "imgur.com" in href

def split_date_head(line: str) -> tuple[list[tuple[int, int]], str]:
    """
    拆出行首連續的「月/日」，回傳 ([(月, 日), ...], 剩下的文字)。
    12/27(六) 12/28(日)、12/27-12/29 這類寫法都算多個日期；同月份的區間會展開。
    """
    s = line.strip()
    m = DATE_RE.match(s)
    dates: list[tuple[int, int]] = []
    sep = ""
    while m:
        mo, d = int(m.group(1)), int(m.group(2))
        if not (1 <= mo <= 12 and 1 <= d <= 31):
            break
        if sep in RANGE_SEPS and dates and dates[-1][0] == mo and 0 < d - dates[-1][1] <= MAX_RANGE_DAYS:
            dates.extend((mo, x) for x in range(dates[-1][1] + 1, d + 1))
        else:
            dates.append((mo, d))
        s = WEEKDAY_RE.sub("", s[m.end():], count=1)
        sm = SEP_RE.match(s)
        sep = sm.group(1) if sm else ""
        rest = s[sm.end():] if sm else s
        m = DATE_RE.match(rest)
        if m:
            s = rest
    if not dates:
        return [], line.strip()
    return dates, LEAD_RE.sub("", s).strip()


class PttExtractor:
    """
    依文件順序吃節點的狀態機：
      idle                        尚未看到日期行
      awaiting-location-for-group 只有日期沒有地點，等下一行文字當地點
      group-located               多日期共用的地點已確定，後面的圖片套用到整組
      single                      單一日期+地點，後面的圖片掛在這筆
    新的日期行一律取代目前的目標。
    """
    IDLE = "idle"
    AWAITING_GROUP = "awaiting-location-for-group"
    GROUP_LOCATED = "group-located"
    SINGLE = "single"

    def __init__(self, ref: date | None = None):
        self.ref = ref
        self.events: list[dict] = []
        self.state = self.IDLE
        self.targets: list[dict] = []

    def _new_event(self, mo: int, d: int, raw_line: str, loc: str) -> dict | None:
        iso = infer_date(mo, d, self.ref)
        if not iso:
            return None
        ev = {
            "matchDate": f"{mo}/{d}",
            "date": iso,
            "rawLine": raw_line,
            "locationStr": loc,
            "images": [],
        }
        self.events.append(ev)
        return ev

    def feed_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        dates, rest = split_date_head(line)
        if dates:
            created = [ev for ev in (self._new_event(mo, d, line, rest) for mo, d in dates) if ev]
            if not created:
                return
            self.targets = created
            if not rest:
                self.state = self.AWAITING_GROUP
            elif len(created) > 1:
                self.state = self.GROUP_LOCATED
            else:
                self.state = self.SINGLE
            return

        # 簽名檔分隔線、※ 系統訊息不能當地點
        if self.state == self.AWAITING_GROUP and WORD_RE.search(line) and not line.startswith("※"):
            for ev in self.targets:
                ev["locationStr"] = line
                ev["rawLine"] = f"{ev['rawLine']} {line}"
            self.state = self.GROUP_LOCATED

    def feed_link(self, href: str | None) -> None:
        if self.state == self.IDLE or not is_image_link(href):
            return
        for ev in self.targets:
            if href not in ev["images"]:
                ev["images"].append(href)

    def feed_text(self, text: str) -> None:
        for line in text.split("\n"):
            self.feed_line(line)

    def feed_node(self, node) -> None:
        if isinstance(node, Comment):
            return
        if isinstance(node, NavigableString):
            self.feed_text(str(node))
        elif isinstance(node, Tag):
            if node.name == "a":
                self.feed_link(node.get("href"))
            elif node.name == "span":
                # 依文件順序走子節點，連結文字不能被當成地點
                for child in node.contents:
                    self.feed_node(child)


def extract_ptt(html: str, ref: date | None = None) -> list[dict]:
    soup = BeautifulSoup(html, "lxml")
    main = soup.select_one("#main-content")
    if main is None:
        raise ValueError("PTT main content not found")
    for meta in main.select(".article-metaline, .article-metaline-right"):
        meta.decompose()

    ex = PttExtractor(ref)
    for node in main.contents:
        ex.feed_node(node)
    return ex.events


async def fetch_ptt(url: str | None = None, client: httpx.AsyncClient | None = None,
                    attempts: int = 3, delay: float = 2.0, ref: date | None = None,
                    sleep=asyncio.sleep) -> list[dict] | None:
    """抓文章並解析；重試用完仍失敗回傳 None（整輪改走舊資料備援）。"""
    url = url or settings.PTT_URL

    async def _once():
        html = await fetch_html(url, headers={"Cookie": "over18=1"}, client=client, timeout=15_000)
        return extract_ptt(html, ref)

    events = await fetch_with_retry(_once, attempts=attempts, delay=delay, label=SOURCE, sleep=sleep)
    if events is not None:
        print(f"[DEBUG] {SOURCE}: {len(events)} events")
    return events
