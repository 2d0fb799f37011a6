# storage.py
from pathlib import Path

from pipelines.cache import read_json, write_json_atomic
from pipelines.normalize import month_file_name

# 只在流程中使用、前端用不到的欄位
DROP_KEYS = ("rawText", "rawContent")

def month_path(data_dir: Path, year: int, month: int) -> Path:
    return Path(data_dir) / month_file_name(year, month)

def compact_event(ev: dict) -> dict:
    out = {k: v for k, v in ev.items() if k not in DROP_KEYS}
    for k in ("detailUrl", "coordinates"):
        if not out.get(k):
            out.pop(k, None)
    ptt = out.pop("pttData", None)
    if ptt:
        # tags 已併到外層、url 全部相同，不重複存
        out["pttData"] = {"rawLine": ptt.get("rawLine", ""), "images": list(ptt.get("images") or [])}
    out["tags"] = sorted(set(out.get("tags") or []))
    out["isPttOnly"] = bool(out.get("isPttOnly"))
    return out

def compact_month(by_date: dict) -> dict:
    return {d: [compact_event(ev) for ev in by_date[d]] for d in sorted(by_date)}

def load_month(data_dir: Path, year: int, month: int) -> dict | None:
    path = month_path(data_dir, year, month)
    data = read_json(path)
    if data is None:
        print(f"[DEBUG] no existing {path.name}")
        return None
    print(f"[DEBUG] found existing {path.name}")
    return data

def save_month(data_dir: Path, year: int, month: int, by_date: dict) -> bool:
    """整月覆寫；寫入失敗只記錄，舊檔保持原樣。"""
    path = month_path(data_dir, year, month)
    payload = compact_month(by_date)
    try:
        write_json_atomic(path, payload)
    except OSError as e:
        print(f"[ERROR] write {path.name}: {e}")
        return False
    total = sum(len(v) for v in payload.values())
    print(f"[WRITE] {path.name}: dates={len(payload)}, events={total}")
    return True
