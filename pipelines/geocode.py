# pipelines/geocode.py
import asyncio
import time
from typing import Callable, Iterable

import httpx

from pipelines.cache import JsonCache
from pipelines.normalize import geocode_query

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"

class Geocoder:
    """
    地址 → {lat, lng}。查不到也記 None，下一輪不再重查。
    快取 key 是原始地址字串；真正送出的查詢字串另外清理過。
    只有沒命中快取的新查詢之間才會等待 interval 秒（Nominatim 一秒一次）。
    """

    def __init__(self, cache: JsonCache, client: httpx.AsyncClient | None = None,
                 user_agent: str = "tw-blood-donation-crawler/1.0", interval: float = 1.1,
                 sleep: Callable = asyncio.sleep, clock: Callable[[], float] = time.monotonic):
        self.cache = cache
        self.client = client
        self.user_agent = user_agent
        self.interval = interval
        self.sleep = sleep
        self.clock = clock
        self.lookups = 0
        self._last: float | None = None

    async def _throttle(self):
        if self._last is not None:
            wait = self.interval - (self.clock() - self._last)
            if wait > 0:
                await self.sleep(wait)
        self._last = self.clock()

    async def lookup(self, address: str, client: httpx.AsyncClient) -> dict | None:
        q = geocode_query(address)
        if not q:
            return None
        await self._throttle()
        self.lookups += 1
        r = await client.get(
            NOMINATIM_URL,
            params={"q": q, "format": "json", "limit": 1, "countrycodes": "tw"},
            headers={"User-Agent": self.user_agent, "Accept-Language": "zh-TW"},
        )
        r.raise_for_status()
        data = r.json()
        if not data:
            return None
        return {"lat": float(data[0]["lat"]), "lng": float(data[0]["lon"])}

    async def geocode_all(self, addresses: Iterable[str]) -> int:
        """先收齊所有未快取地址（去重）再逐一查詢，回傳新寫入快取的筆數。"""
        pending = list(dict.fromkeys(a for a in addresses if a and a not in self.cache))
        if not pending:
            return 0
        print(f"[DEBUG] geocode: {len(pending)} new addresses (~{int(len(pending) * self.interval)}s)")

        async def _run(c: httpx.AsyncClient) -> int:
            done = 0
            for addr in pending:
                try:
                    result = await self.lookup(addr, c)
                except Exception as e:
                    # 連線或 HTTP 錯誤不寫快取，下一輪再試
                    print(f"[WARN] geocode {addr}: {e}")
                    continue
                self.cache.set(addr, result)
                done += 1
            return done

        if self.client is not None:
            return await _run(self.client)
        async with httpx.AsyncClient(timeout=15) as c:
            return await _run(c)

    def apply(self, by_date: dict) -> int:
        filled = 0
        for events in by_date.values():
            for ev in events:
                if ev.get("coordinates"):
                    continue
                coords = self.cache.get(ev.get("location") or "")
                if coords:
                    ev["coordinates"] = dict(coords)
                    filled += 1
        return filled

    async def enrich(self, by_date: dict) -> int:
        addresses = [
            ev.get("location") or ""
            for events in by_date.values()
            for ev in events
            if not ev.get("coordinates")
        ]
        await self.geocode_all(addresses)
        filled = self.apply(by_date)
        print(f"[DEBUG] geocode: lookups={self.lookups}, coordinates filled={filled}")
        return filled
