# pipelines/normalize.py
import calendar
import re
from datetime import date, datetime, timezone, timedelta

import dateparser

_TZ = timezone(timedelta(hours=8))  # Asia/Taipei

EXPLICIT_DATE_RE = re.compile(r"(\d{3,4})\s*[./\-年]\s*(\d{1,2})\s*[./\-月]\s*(\d{1,2})")
PAREN_RE = re.compile(r"\([^)]*\)|（[^）]*）")
# 地址以外的符號（保留中日韓文字、英數與連字號）
NON_ADDRESS_RE = re.compile(r"[^\u4e00-\u9fffA-Za-z0-9\-]")

def today() -> date:
    return datetime.now(_TZ).date()

def infer_date(month: int, day: int, ref: date | None = None) -> str | None:
    """只有「月/日」時推算年份，回傳 YYYY-MM-DD；不合法日期回傳 None。"""
    ref = ref or today()
    year = ref.year
    # 年底看到一、二月 → 明年；年初看到十一、十二月 → 去年（舊文章）
    if ref.month >= 11 and month <= 2:
        year += 1
    elif ref.month <= 2 and month >= 11:
        year -= 1
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None

def to_iso_date(text: str | None) -> str:
    """2025/12/27、114/12/27（民國）或其他寫法 → 2025-12-27；失敗回傳空字串。"""
    if not text:
        return ""
    m = EXPLICIT_DATE_RE.search(text)
    if m:
        y, mo, d = (int(g) for g in m.groups())
        if y < 1911:
            y += 1911
        try:
            return date(y, mo, d).isoformat()
        except ValueError:
            return ""
    dt = dateparser.parse(
        text,
        languages=["zh", "en"],
        settings={"TIMEZONE": "Asia/Taipei", "DATE_ORDER": "YMD"},
    )
    return dt.date().isoformat() if dt else ""

def clean_location(text: str | None) -> str:
    if not text:
        return ""
    text = PAREN_RE.sub("", text)
    return " ".join(text.split())

def geocode_query(text: str | None) -> str:
    q = NON_ADDRESS_RE.sub("", clean_location(text))
    if not q:
        return ""
    if not (q.startswith("台灣") or q.startswith("臺灣")):
        q = "台灣" + q
    return q

def month_date_range(year: int, month: int) -> tuple[str, str]:
    last = calendar.monthrange(year, month)[1]
    return f"{year}/{month:02d}/01", f"{year}/{month:02d}/{last:02d}"

def month_file_name(year: int, month: int) -> str:
    return f"bloodInfo-{year}{month:02d}.json"

def month_key(iso_date: str) -> tuple[int, int]:
    y, m, _ = iso_date.split("-")
    return int(y), int(m)

def next_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)
