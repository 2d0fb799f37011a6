# 生成唯一鍵避免重複
import base64
import hashlib

def make_hash(*parts: str) -> str:
    s = "|".join((p or "").strip() for p in parts)
    return hashlib.sha256(s.encode("utf-8")).hexdigest()

def make_event_id(center: str, raw_date: str, time: str, organization: str) -> str:
    """官方活動 id：與舊版資料相同的 base64 編碼，換版後仍能對回舊快照。"""
    s = f"{center}-{raw_date}-{time}-{organization}"
    return base64.b64encode(s.encode("utf-8")).decode("ascii")

def make_ptt_id(date: str, raw_line: str) -> str:
    return "ptt-" + make_hash(date, raw_line)[:16]
