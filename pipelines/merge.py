# pipelines/merge.py
"""
官方活動 × PTT 整理文 的合併。

PTT 的地點寫法很隨意（「大安XX路」「台北車站/西門」），官方是完整地址，
只能用「去掉雜訊詞後的片段是否出現在官方地址裡」這種寬鬆比對。
同一天若有多筆官方活動符合，依列表順序各自取第一個符合的 PTT 行。

PTT 整篇抓不到時不做比對，改從上一輪的檔案把 pttData / tags 搬回來；
某天有 PTT 資料但這筆沒對到，也會嘗試沿用上一輪的結果。
"""
import copy
import re

from pipelines.dedupe import make_ptt_id
from pipelines.normalize import clean_location, month_key

PTT_CENTER = "PTT"
PTT_ORGANIZATION = "PTT 網友分享"
USER_REPORT_CENTER = "使用者回報"

NOISE_WORDS = [
    "台北", "臺北", "新北", "基隆", "桃園", "新竹", "苗栗", "台中", "臺中", "彰化", "雲林", "南投",
    "嘉義", "台南", "臺南", "高雄", "屏東", "宜蘭", "花蓮", "台東", "臺東",
    "捐血室", "捐血站", "捐血車", "巡迴車", "捷運站", "公園", "出口", "配合",
]

PUNCT_RE = re.compile(r"[^\u4e00-\u9fa5a-zA-Z0-9]")
SPLIT_RE = re.compile(r"[/、,，\s]+")
# 「臺北市中山區」→「臺北中山」，讓「中山某路」這種省略行政區單位的寫法也對得上
ADMIN_RE = re.compile(r"^(?:([\u4e00-\u9fa5]{2})[縣市])?(?:([\u4e00-\u9fa5]{1,3}?)[區鄉鎮市])?")
DIGITS_RE = re.compile(r"^\d+$")

def _unify(text: str | None) -> str:
    return (text or "").replace("台", "臺")

def official_keys(location: str | None) -> list[str]:
    base = PUNCT_RE.sub("", _unify(location))
    if not base:
        return []
    m = ADMIN_RE.match(base)
    short = (m.group(1) or "") + (m.group(2) or "") + base[m.end():] if m and m.end() else base
    return [base] if short == base else [base, short]

def strip_noise(token: str, noise: list[str] = NOISE_WORDS) -> str:
    """頭尾反覆去掉雜訊詞，直到不再變動或剩兩個字以下（至少跑一輪）。"""
    while True:
        prev = token
        for w in noise:
            if token.startswith(w):
                token = token[len(w):]
            if token.endswith(w):
                token = token[: len(token) - len(w)]
        if token == prev or len(token) <= 2:
            return token

def forum_tokens(location_str: str | None) -> list[str]:
    out = []
    for sub in SPLIT_RE.split(_unify(location_str)):
        tok = strip_noise(PUNCT_RE.sub("", sub))
        if len(tok) < 2 or DIGITS_RE.match(tok):
            continue
        out.append(tok)
    return out

def is_match(official_location: str | None, location_str: str | None) -> bool:
    keys = official_keys(official_location)
    if not keys:
        return False
    return any(tok in key for tok in forum_tokens(location_str) for key in keys)

def find_match(event: dict, pool: list[dict]) -> dict | None:
    loc = event.get("location") or event.get("center") or ""
    for cand in pool:
        if is_match(loc, cand.get("locationStr")):
            return cand
    return None

def union_tags(*groups) -> list[str]:
    out: set[str] = set()
    for g in groups:
        out.update(g or [])
    return sorted(out)

def is_standalone(ev: dict) -> bool:
    return bool(ev.get("isPttOnly")) or ev.get("center") in (PTT_CENTER, USER_REPORT_CENTER) or bool(ev.get("isUserReport"))

def find_previous(event: dict, previous_events: list[dict]) -> dict | None:
    """先比 id，id 規則改過就退回用 主辦單位+地點。"""
    for e in previous_events:
        if e.get("id") == event.get("id"):
            return e
    for e in previous_events:
        if e.get("organization") == event.get("organization") and e.get("location") == event.get("location"):
            return e
    return None

def carry_forward(event: dict, previous_events: list[dict]) -> bool:
    stored = find_previous(event, previous_events)
    if not stored or not stored.get("pttData"):
        return False
    event["pttData"] = copy.deepcopy(stored["pttData"])
    event["tags"] = union_tags(event.get("tags"), stored.get("tags"))
    return True

def attach(event: dict, cand: dict) -> None:
    event["pttData"] = {"rawLine": cand.get("rawLine", ""), "images": list(cand.get("images") or [])}
    event["tags"] = union_tags(event.get("tags"), cand.get("tags"))

def make_standalone(cand: dict, source_url: str | None = None) -> dict:
    return {
        "id": make_ptt_id(cand["date"], cand.get("rawLine", "")),
        "time": "",
        "organization": PTT_ORGANIZATION,
        "location": clean_location(cand.get("locationStr")),
        "activityDate": cand["date"],
        "center": PTT_CENTER,
        "detailUrl": source_url,
        "tags": union_tags(cand.get("tags")),
        "pttData": {"rawLine": cand.get("rawLine", ""), "images": list(cand.get("images") or [])},
        "isPttOnly": True,
    }

def _has_standalone(events: list[dict], new: dict) -> bool:
    raw = new["pttData"]["rawLine"]
    return any(
        e.get("isPttOnly") and (e.get("id") == new["id"] or (e.get("pttData") or {}).get("rawLine") == raw)
        for e in events
    )

def _add_unique(events: list[dict], ev: dict) -> bool:
    if any(e.get("id") == ev.get("id") for e in events):
        return False
    events.append(copy.deepcopy(ev))
    return True

def merge(official: dict, forum: list[dict] | None, previous: dict | None,
          year: int, month: int, source_url: str | None = None) -> dict:
    """
    official: {date: [event, ...]}，forum: PTT 候選（None 代表整篇抓取失敗），
    previous: 上一輪同月份檔案內容（可為 None）。回傳新的 {date: [event, ...]}。
    """
    previous = previous or {}
    result: dict[str, list[dict]] = {}
    for d, events in official.items():
        bucket = result.setdefault(d, [])
        for ev in events:
            ev = copy.deepcopy(ev)
            ev["tags"] = union_tags(ev.get("tags"))
            ev.setdefault("isPttOnly", False)
            bucket.append(ev)

    matched = carried = promoted = 0

    if not forum:
        print("[WARN] merge: PTT data unavailable, restoring enrichment from previous snapshot")
        for d, events in result.items():
            prev_events = previous.get(d) or []
            for ev in events:
                if not is_standalone(ev) and carry_forward(ev, prev_events):
                    carried += 1
        # 舊的 PTT 獨立活動也一併保留
        for d, prev_events in previous.items():
            for ev in prev_events:
                if ev.get("isPttOnly") and month_key(d) == (year, month):
                    if _add_unique(result.setdefault(d, []), ev):
                        carried += 1
    else:
        pool_by_date: dict[str, list[dict]] = {}
        for cand in forum:
            pool_by_date.setdefault(cand["date"], []).append(cand)

        consumed: set[int] = set()
        for d, events in result.items():
            pool = pool_by_date.get(d)
            if not pool:
                continue
            prev_events = previous.get(d) or []
            for ev in events:
                if is_standalone(ev):
                    continue
                cand = find_match(ev, pool)
                if cand is not None:
                    attach(ev, cand)
                    consumed.add(id(cand))
                    matched += 1
                elif carry_forward(ev, prev_events):
                    carried += 1

        for d, pool in pool_by_date.items():
            if month_key(d) != (year, month):
                continue
            for cand in pool:
                if id(cand) in consumed:
                    continue
                if not (cand.get("images") or cand.get("tags")):
                    continue
                new = make_standalone(cand, source_url)
                bucket = result.setdefault(d, [])
                if _has_standalone(bucket, new):
                    continue
                bucket.append(new)
                promoted += 1

    # 使用者回報由另一支匯入程式寫進來，這裡沒有來源可以重算，原樣保留
    for d, prev_events in previous.items():
        for ev in prev_events:
            if ev.get("center") == USER_REPORT_CENTER or ev.get("isUserReport"):
                _add_unique(result.setdefault(d, []), ev)

    for d, events in result.items():
        prev_events = previous.get(d) or []
        for ev in events:
            if ev.get("coordinates"):
                continue
            stored = find_previous(ev, prev_events)
            if stored and stored.get("coordinates"):
                ev["coordinates"] = dict(stored["coordinates"])

    total = sum(len(v) for v in result.values())
    print(f"[DEBUG] merge {year}-{month:02d}: matched={matched}, carried={carried}, promoted={promoted}, total={total}")
    return dict(sorted(result.items()))
