# sheets_writer.py  — 月份活動鏡像到 Google Sheet（選用，設定 SHEET_ID 才會啟用）
import os, json
import gspread
from google.oauth2.service_account import Credentials
import pandas as pd
from gspread.exceptions import WorksheetNotFound

COLUMNS = ["id","activityDate","time","center","organization","location",
           "tags","lat","lng","pttRawLine","pttImages","isPttOnly","detailUrl"]

def _client():
    info = json.loads(os.environ["GCP_SERVICE_ACCOUNT_JSON"])
    creds = Credentials.from_service_account_info(
        info, scopes=["https://www.googleapis.com/auth/spreadsheets"])
    return gspread.authorize(creds)

def _worksheet(client, sheet_name: str):
    sh = client.open_by_key(os.environ["SHEET_ID"])
    try:
        return sh.worksheet(sheet_name)
    except WorksheetNotFound:
        print(f"[SHEET] create tab {sheet_name}")
        return sh.add_worksheet(title=sheet_name, rows=1, cols=len(COLUMNS))

def _sheet_df(ws) -> pd.DataFrame:
    values = ws.get_all_values()
    if len(values) < 2:
        return pd.DataFrame(columns=COLUMNS)
    df = pd.DataFrame(values[1:], columns=values[0])
    # 手動加過欄位或舊版表頭缺欄，一律對齊成目前的欄位
    return df.reindex(columns=COLUMNS, fill_value="")

def to_rows(by_date: dict) -> list[dict]:
    """{date: [event]} 攤平成試算表列；多值欄位以分號串接。"""
    rows = []
    for d in sorted(by_date):
        for ev in by_date[d]:
            coords = ev.get("coordinates") or {}
            ptt = ev.get("pttData") or {}
            rows.append({
                "id": ev.get("id", ""),
                "activityDate": ev.get("activityDate") or d,
                "time": ev.get("time", ""),
                "center": ev.get("center", ""),
                "organization": ev.get("organization", ""),
                "location": ev.get("location", ""),
                "tags": ";".join(sorted(ev.get("tags") or [])),
                "lat": coords.get("lat", ""),
                "lng": coords.get("lng", ""),
                "pttRawLine": ptt.get("rawLine", ""),
                "pttImages": ";".join(ptt.get("images") or []),
                "isPttOnly": "TRUE" if ev.get("isPttOnly") else "FALSE",
                "detailUrl": ev.get("detailUrl") or "",
            })
    return rows

def replace_month(rows: list[dict], year: int, month: int, sheet_name: str | None = None, client=None):
    """
    以 rows 取代分頁中該月份的所有列，其他月份保留；JSON 是整月覆寫，這裡也一樣，
    官方撤掉的活動不會殘留在表上。回傳 (written, removed)。
    """
    sheet_name = sheet_name or os.environ.get("SHEET_NAME", "BloodEvents")
    ws = _worksheet(client or _client(), sheet_name)

    cur = _sheet_df(ws)
    prefix = f"{year}-{month:02d}-"
    in_month = cur["activityDate"].astype(str).str.startswith(prefix)

    new_df = pd.DataFrame(rows, columns=COLUMNS).fillna("").astype(str)
    removed = int((~cur.loc[in_month, "id"].isin(new_df["id"])).sum())

    merged = (pd.concat([cur.loc[~in_month], new_df], ignore_index=True)
                .sort_values(["activityDate", "id"], kind="stable"))
    ws.clear()
    ws.update(values=[COLUMNS] + merged.values.tolist(), range_name="A1",
              value_input_option="USER_ENTERED")
    try:
        ws.freeze(rows=1)
    except Exception as e:
        print(f"[WARN] sheet freeze: {e}")

    print(f"[SHEET] tab={ws.title}, month={year}-{month:02d}, rows={len(new_df)}, total={len(merged)}")
    return len(new_df), removed

def mirror_month(by_date: dict, year: int, month: int, sheet_name: str | None = None, client=None):
    written, removed = replace_month(to_rows(by_date), year, month, sheet_name=sheet_name, client=client)
    print(f"[WRITE] sheet written={written}, removed={removed}")
    return written, removed
