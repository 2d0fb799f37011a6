# scrapers/blood_center.py  — 四個捐血中心的活動列表（新版 xcevent 頁面）
import asyncio
import time
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from scrapers.base import fetch_html
from pipelines.normalize import to_iso_date
from pipelines.dedupe import make_event_id

XSMSID = "0P078610132470612427"
PATH = "/xcevent"

# 順序即合併順序，比對時先到先贏
CENTERS = [
    {"name": "台北", "base_url": "https://www.tp.blood.org.tw", "xsmsid": XSMSID},
    {"name": "新竹", "base_url": "https://www.sc.blood.org.tw", "xsmsid": XSMSID},
    {"name": "台中", "base_url": "https://www.tc.blood.org.tw", "xsmsid": XSMSID},
    {"name": "高雄", "base_url": "https://www.ks.blood.org.tw", "xsmsid": XSMSID},
]

MIN_CELLS = 4
MAX_PAGES = 50          # 保險上限，避免「下一頁」永遠存在時無限翻頁
NAV_TIMEOUT = 30_000
JS_TIMEOUT = 10_000
# 當月沒有活動時頁面不會有表格，這種頁面不必再開瀏覽器
NO_RESULT_MARKERS = ("查無", "無資料", "沒有資料", "尚無")

def _cell_text(cell) -> str:
    # 只去頭尾空白；id 由這些欄位組成，內部空白要與舊快照一致
    return cell.get_text().strip()

def _needs_browser(html: str) -> bool:
    if "<table" in html:
        return False
    return not any(m in html for m in NO_RESULT_MARKERS)

def parse_rows(html: str, center: dict) -> tuple[list[dict], bool]:
    """
    解析一頁列表，回傳 (rows, has_next)。
    欄位順序：作業時間 | 日期 | 捐血點/主辦單位 | 地點
    """
    soup = BeautifulSoup(html, "lxml")
    rows = []
    for tr in soup.select("table tbody tr"):
        cells = tr.find_all("td")
        if len(cells) < MIN_CELLS:
            continue
        time_, date_text, org, loc = (_cell_text(c) for c in cells[:MIN_CELLS])
        if not (time_ and date_text and org):
            continue
        iso = to_iso_date(date_text)
        if not iso:
            continue

        detail_url = None
        a = cells[2].find("a", href=True)
        if a and a["href"].strip():
            detail_url = urljoin(center["base_url"] + "/", a["href"].strip())

        rows.append({
            "id": make_event_id(center["name"], date_text, time_, org),
            "time": time_,
            "organization": org,
            "location": loc,
            "rawText": f"{time_} {org} {loc}",
            "activityDate": iso,
            "center": center["name"],
            "detailUrl": detail_url,
        })

    has_next = any("下一頁" in a.get_text() for a in soup.find_all("a"))
    return rows, has_next

async def crawl_center(center: dict, start_date: str, end_date: str,
                       client: httpx.AsyncClient | None = None, js_fallback: bool = True) -> dict:
    """單一中心逐頁抓取；某頁失敗就停在那頁，已抓到的保留。"""
    by_date: dict[str, list[dict]] = {}
    url = center["base_url"] + PATH
    page = 1
    start = time.time()
    print(f"[DEBUG] {center['name']}: crawling {start_date} ~ {end_date}")

    while page <= MAX_PAGES:
        params = {
            "xsmsid": center["xsmsid"],
            "donationdatebegin": start_date,
            "donationdateend": end_date,
            "page": page,
        }
        try:
            html = await fetch_html(url, params=params, verify=False, client=client, timeout=NAV_TIMEOUT)
            if js_fallback and _needs_browser(html):
                # 偶爾回來的是前端渲染的殼，改用瀏覽器再抓一次
                html = await fetch_html(url, js=True, params=params, verify=False,
                                        wait_selector="table", timeout=JS_TIMEOUT)
            rows, has_next = parse_rows(html, center)
        except Exception as e:
            print(f"[WARN] {center['name']}: page {page} failed -> {e}")
            break

        if not rows:
            break
        for r in rows:
            by_date.setdefault(r["activityDate"], []).append(r)
        if not has_next:
            break
        page += 1

    total = sum(len(v) for v in by_date.values())
    print(f"[DEBUG] {center['name']}: {len(by_date)} dates, {total} events (elapsed {int(time.time()-start)}s)")
    return by_date

async def crawl_all(start_date: str, end_date: str, centers: list[dict] | None = None,
                    client: httpx.AsyncClient | None = None, js_fallback: bool = True) -> dict:
    """四個中心可以同時抓；結果依 CENTERS 順序合併，確保每次順序一致。"""
    centers = centers or CENTERS

    async def _run(c: httpx.AsyncClient):
        return await asyncio.gather(
            *(crawl_center(center, start_date, end_date, client=c, js_fallback=js_fallback) for center in centers),
            return_exceptions=True,
        )

    if client is None:
        async with httpx.AsyncClient(timeout=NAV_TIMEOUT / 1000, verify=False) as c:
            results = await _run(c)
    else:
        results = await _run(client)

    merged: dict[str, list[dict]] = {}
    for center, res in zip(centers, results):
        if isinstance(res, BaseException):
            print(f"[WARN] {center['name']}: {res}")
            continue
        for d, events in res.items():
            merged.setdefault(d, []).extend(events)
    return dict(sorted(merged.items()))
