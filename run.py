import argparse
import asyncio
import json
import os
from pathlib import Path

import settings
from storage import load_month, save_month
from scrapers import blood_center, ptt
from pipelines.cache import JsonCache
from pipelines.geocode import Geocoder
from pipelines.merge import merge
from pipelines.normalize import month_date_range, next_month, today
from pipelines.tags import TagClassifier

GEOCODE_CACHE = "geocodeCache.json"
TAG_CACHE = "tagCache.json"

def _parse_month(text: str) -> tuple[int, int]:
    y, m = text.split("-")
    y, m = int(y), int(m)
    if not 1 <= m <= 12:
        raise argparse.ArgumentTypeError(f"invalid month: {text}")
    return y, m

def default_months() -> list[tuple[int, int]]:
    # 當月 + 下個月
    t = today()
    return [(t.year, t.month), next_month(t.year, t.month)]

async def process_month(year: int, month: int, forum: list[dict] | None, data_dir: Path,
                        geocoder: Geocoder | None = None, crawl=blood_center.crawl_all) -> int:
    start, end = month_date_range(year, month)
    print(f"[DEBUG] === {year}-{month:02d} ({start} ~ {end}) ===")

    previous = load_month(data_dir, year, month)
    official = await crawl(start, end)
    merged = merge(official, forum, previous, year, month, source_url=settings.PTT_URL)

    if geocoder is not None:
        await geocoder.enrich(merged)

    total = sum(len(v) for v in merged.values())
    if merged:
        first = next(iter(merged.values()))[0]
        sample = {k: first.get(k) for k in ("activityDate", "center", "organization", "location", "tags")}
        print("[SAMPLE]", json.dumps(sample, ensure_ascii=False))

    save_month(data_dir, year, month, merged)

    if settings.SHEET_ID:
        try:
            from sheets_writer import mirror_month
            mirror_month(merged, year, month, sheet_name=settings.SHEET_NAME)
        except Exception as e:
            print(f"[WARN] sheet mirror {year}-{month:02d}: {e}")
    return total

async def run_pipeline(months: list[tuple[int, int]], data_dir: Path, use_ocr: bool = True,
                       use_geocode: bool = True, fetch_forum=ptt.fetch_ptt,
                       crawl=blood_center.crawl_all, classifier: TagClassifier | None = None,
                       geocoder: Geocoder | None = None) -> int:
    data_dir = Path(data_dir)
    tag_cache = classifier.cache if classifier else JsonCache(data_dir / TAG_CACHE)
    classifier = classifier or TagClassifier(tag_cache, max_images=settings.OCR_MAX_IMAGES, use_ocr=use_ocr)
    if use_geocode and geocoder is None:
        geocoder = Geocoder(JsonCache(data_dir / GEOCODE_CACHE),
                            user_agent=settings.GEOCODE_USER_AGENT, interval=settings.GEOCODE_INTERVAL)
    if not use_geocode:
        geocoder = None

    total = 0
    try:
        # PTT 只抓一次，各月份共用
        forum = await fetch_forum()
        if forum:
            await classifier.classify_all(forum)

        for year, month in months:
            try:
                total += await process_month(year, month, forum, data_dir, geocoder=geocoder, crawl=crawl)
            except Exception as e:
                print(f"[WARN] month {year}-{month:02d}: {e}")
    finally:
        classifier.cache.save()
        if geocoder is not None:
            geocoder.cache.save()

    print(f"[DEBUG] done: {total} events in {len(months)} month(s)")
    return total

def main(argv=None):
    parser = argparse.ArgumentParser(description="更新捐血活動資料")
    parser.add_argument("--month", action="append", type=_parse_month, metavar="YYYY-MM",
                        help="指定月份，可重複；預設為當月與下個月")
    parser.add_argument("--data-dir", type=Path, default=settings.DATA_DIR)
    parser.add_argument("--no-ocr", action="store_true", default=settings.SKIP_OCR)
    parser.add_argument("--no-geocode", action="store_true", default=settings.SKIP_GEOCODE)
    args = parser.parse_args(argv)

    print(f"[ENV] DATA_DIR={args.data_dir}, SHEET_ID.tail={os.environ.get('SHEET_ID','')[-8:]}, "
          f"ocr={not args.no_ocr}, geocode={not args.no_geocode}")

    months = args.month or default_months()
    return asyncio.run(run_pipeline(months, args.data_dir,
                                    use_ocr=not args.no_ocr, use_geocode=not args.no_geocode))

if __name__ == "__main__":
    main()
