# pipelines/tags.py
"""
贈品標籤分類：關鍵字比對 + 圖片 OCR。

同一行 PTT 文字的結果會寫進永久快取，下一輪文字沒變就不再下載圖片、不再跑 OCR。
OCR 模型載入很慢，第一次真的需要時才建立，整批處理完呼叫 release() 釋放。
"""
import re

import httpx

from pipelines.cache import JsonCache
from scrapers.base import HEADERS

# 標籤名稱需與前端贈品篩選頁的 tagId 一致
TAG_KEYWORDS: dict[str, list[str]] = {
    "電影票": ["電影票", "電影", "影城", "威秀", "國賓", "秀泰", "美麗華", "新光影城", "喜樂時代", "in89", "ambassador", "vieshow"],
    "禮券": ["禮券", "禮卷", "商品券", "提貨券", "禮物卡", "百貨", "全聯", "家樂福", "sogo", "新光三越", "遠百"],
    "超商": ["超商", "7-11", "7-eleven", "統一超商", "全家", "萊爾富", "ok超商", "familymart"],
    "餐飲": ["餐券", "餐飲", "飲料", "咖啡", "星巴克", "85度c", "路易莎", "麥當勞", "肯德基", "摩斯", "漢堡王", "手搖", "茶飲", "starbucks"],
    "生活用品": ["生活用品", "衛生紙", "洗衣精", "洗衣球", "毛巾", "沐浴乳", "洗髮", "牙膏", "牙刷", "環保袋", "保溫瓶", "保溫杯", "餐具"],
    "食品": ["食品", "泡麵", "餅乾", "零食", "白米", "雞蛋", "罐頭", "麵條", "醬油", "鮮奶"],
}

KEYWORD_TO_TAG = {kw.lower(): tag for tag, kws in TAG_KEYWORDS.items() for kw in kws}

IMGUR_PAGE_RE = re.compile(r"^https?://(?:www\.|m\.)?imgur\.com/(\w+)/?$", re.I)

def match_keywords(text: str | None) -> set[str]:
    low = (text or "").lower()
    return {tag for kw, tag in KEYWORD_TO_TAG.items() if kw in low}

def direct_image_url(url: str) -> str:
    """imgur 的頁面連結轉成圖片直連，其他原樣回傳。"""
    m = IMGUR_PAGE_RE.match(url.strip())
    return f"https://i.imgur.com/{m.group(1)}.jpg" if m else url.strip()


class OcrEngine:
    """easyocr 的薄包裝，模型在第一次 read() 時才載入。"""

    def __init__(self, langs: tuple[str, ...] = ("ch_tra", "en"), gpu: bool = False):
        self.langs = list(langs)
        self.gpu = gpu
        self._reader = None

    def _load(self):
        import easyocr  # 載入 torch 很慢，沒用到 OCR 的執行不付這個成本
        print(f"[DEBUG] ocr: loading easyocr {self.langs}")
        self._reader = easyocr.Reader(self.langs, gpu=self.gpu)

    def read(self, image_bytes: bytes) -> str:
        if not image_bytes:
            return ""
        if self._reader is None:
            self._load()
        return "\n".join(self._reader.readtext(image_bytes, detail=0, paragraph=True))

    def release(self) -> None:
        if self._reader is not None:
            print("[DEBUG] ocr: released")
        self._reader = None


class TagClassifier:
    def __init__(self, cache: JsonCache, ocr: OcrEngine | None = None,
                 client: httpx.AsyncClient | None = None, max_images: int = 3, use_ocr: bool = True):
        self.cache = cache
        self.ocr = ocr if ocr is not None else OcrEngine()
        self.client = client
        self.max_images = max_images
        self.use_ocr = use_ocr
        self.hits = 0
        self.ocr_runs = 0

    async def _download(self, url: str) -> bytes:
        target = direct_image_url(url)
        if self.client is not None:
            r = await self.client.get(target, headers=HEADERS, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=20) as c:
                r = await c.get(target, headers=HEADERS, follow_redirects=True)
        r.raise_for_status()
        return r.content

    async def classify(self, raw_text: str, images: list[str] | tuple = ()) -> list[str]:
        cached = self.cache.get(raw_text)
        if cached is not None:
            self.hits += 1
            return list(cached)

        tags = match_keywords(raw_text)
        images = list(images or [])
        if self.use_ocr:
            for url in images[: self.max_images]:
                try:
                    data = await self._download(url)
                    text = self.ocr.read(data)
                    self.ocr_runs += 1
                except Exception as e:
                    print(f"[WARN] ocr {url}: {e}")
                    continue
                tags |= match_keywords(text)

        result = sorted(tags)
        # 沒跑 OCR 的結果不進快取，否則之後開啟 OCR 也不會重算
        if self.use_ocr or not images:
            self.cache.set(raw_text, result)
        return result

    async def classify_all(self, candidates: list[dict]) -> list[dict]:
        """整批 PTT 候選補上 tags，結束後釋放 OCR 模型。"""
        try:
            for c in candidates:
                c["tags"] = await self.classify(c.get("rawLine", ""), c.get("images") or [])
        finally:
            self.ocr.release()
        print(f"[DEBUG] tags: {len(candidates)} candidates, cache hits={self.hits}, ocr runs={self.ocr_runs}")
        return candidates
