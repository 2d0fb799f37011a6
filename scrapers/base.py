# scrapers/base.py
import asyncio
from typing import Callable

import httpx
from playwright.async_api import async_playwright

UA = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
      "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36")

HEADERS = {
    "User-Agent": UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "zh-TW,zh;q=0.9,en-US;q=0.8,en;q=0.7",
}

async def fetch_html(url: str, js: bool=False, wait_selector: str|None=None, timeout: int=45_000,
                     params: dict|None=None, headers: dict|None=None,
                     verify: bool=True, client: httpx.AsyncClient|None=None) -> str:
    if not js:
        hdrs = {**HEADERS, **(headers or {})}
        if client is not None:
            r = await client.get(url, params=params, headers=hdrs,
                                 timeout=timeout / 1000, follow_redirects=True)
            r.raise_for_status()
            return r.text
        async with httpx.AsyncClient(timeout=timeout / 1000, verify=verify) as c:
            r = await c.get(url, params=params, headers=hdrs, follow_redirects=True)
            r.raise_for_status()
            return r.text

    if params:
        url = str(httpx.URL(url, params=params))
    async with async_playwright() as p:
        browser = await p.chromium.launch()
        ctx = await browser.new_context(user_agent=UA, locale="zh-TW", ignore_https_errors=not verify)
        page = await ctx.new_page()
        await page.goto(url, timeout=timeout)
        if wait_selector:
            await page.wait_for_selector(wait_selector, timeout=timeout)
        else:
            await page.wait_for_load_state("networkidle")
        html = await page.content()
        await browser.close()
        return html

async def fetch_with_retry(fetch: Callable, attempts: int=3, delay: float=2.0, label: str="fetch",
                           sleep: Callable=asyncio.sleep):
    """
    固定間隔重試；fetch 為無參數 coroutine function，丟例外即視為該次失敗。
    全部失敗回傳 None，由呼叫端決定要走哪條備援。
    """
    for attempt in range(1, attempts + 1):
        try:
            return await fetch()
        except Exception as e:
            print(f"[WARN] {label}: attempt {attempt}/{attempts} failed -> {e}")
            if attempt < attempts:
                await sleep(delay)
    print(f"[WARN] {label}: all {attempts} attempts failed")
    return None
