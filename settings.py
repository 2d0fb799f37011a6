# settings.py
import os
from pathlib import Path

ROOT = Path(__file__).resolve().parent

def _flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}

# 輸出目錄：每月一個 bloodInfo-YYYYMM.json，外加兩個快取檔
DATA_DIR = Path(os.environ.get("DATA_DIR") or ROOT / "data")

PTT_URL = os.environ.get("PTT_URL") or "https://www.ptt.cc/bbs/Lifeismoney/M.1735838860.A.6F3.html"

# Nominatim 使用規範：需有可辨識的 UA，且每秒最多一次
GEOCODE_USER_AGENT = os.environ.get("GEOCODE_USER_AGENT") or "tw-blood-donation-crawler/1.0 (schedule aggregation)"
GEOCODE_INTERVAL = float(os.environ.get("GEOCODE_INTERVAL") or 1.1)

OCR_MAX_IMAGES = int(os.environ.get("OCR_MAX_IMAGES") or 3)

SKIP_OCR = _flag("SKIP_OCR")
SKIP_GEOCODE = _flag("SKIP_GEOCODE")

# Google Sheet 鏡像（選用）
SHEET_ID = os.environ.get("SHEET_ID", "")
SHEET_NAME = os.environ.get("SHEET_NAME") or "BloodEvents"
