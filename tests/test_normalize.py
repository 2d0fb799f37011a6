import base64
from datetime import date

from pipelines.normalize import (
    clean_location, geocode_query, infer_date, month_date_range, month_file_name,
    month_key, next_month, to_iso_date,
)
from pipelines.dedupe import make_event_id, make_ptt_id


def test_infer_date_rolls_into_next_year_in_december():
    assert infer_date(1, 3, date(2024, 12, 15)) == "2025-01-03"
    assert infer_date(2, 14, date(2024, 11, 2)) == "2025-02-14"

def test_infer_date_keeps_current_year():
    assert infer_date(6, 1, date(2024, 12, 15)) == "2024-06-01"
    assert infer_date(12, 31, date(2024, 12, 15)) == "2024-12-31"

def test_infer_date_archive_in_january_goes_back():
    assert infer_date(12, 28, date(2025, 1, 5)) == "2024-12-28"

def test_infer_date_invalid_calendar_date():
    assert infer_date(2, 30, date(2024, 6, 1)) is None

def test_to_iso_date_explicit_and_roc():
    assert to_iso_date("2025/12/27") == "2025-12-27"
    assert to_iso_date(" 2025-1-3 ") == "2025-01-03"
    assert to_iso_date("114/12/27") == "2025-12-27"
    assert to_iso_date("2025/13/40") == ""
    assert to_iso_date("") == ""

def test_clean_location_drops_asides():
    assert clean_location("台北市大安區XX路5號 (近捷運站)") == "台北市大安區XX路5號"
    assert clean_location("  高雄市（巨蛋）  三民區 ") == "高雄市 三民區"

def test_geocode_query_prefixes_country():
    assert geocode_query("台北市大安區XX路5號（B1）!") == "台灣台北市大安區XX路5號"
    assert geocode_query("臺灣新竹市東區1號") == "臺灣新竹市東區1號"
    assert geocode_query("★★") == ""

def test_month_helpers():
    assert month_date_range(2024, 2) == ("2024/02/01", "2024/02/29")
    assert month_file_name(2025, 1) == "bloodInfo-202501.json"
    assert next_month(2024, 12) == (2025, 1)
    assert next_month(2025, 3) == (2025, 4)
    assert month_key("2025-01-10") == (2025, 1)

def test_event_id_is_stable_and_decodable():
    a = make_event_id("台北", "2025/01/10", "09:00~17:00", "某捐血站")
    b = make_event_id("台北", "2025/01/10", "09:00~17:00", "某捐血站")
    assert a == b
    assert base64.b64decode(a).decode("utf-8") == "台北-2025/01/10-09:00~17:00-某捐血站"
    assert a != make_event_id("新竹", "2025/01/10", "09:00~17:00", "某捐血站")

def test_ptt_id_depends_on_date_and_line():
    assert make_ptt_id("2025-01-10", "1/10 西門") == make_ptt_id("2025-01-10", "1/10 西門")
    assert make_ptt_id("2025-01-10", "1/10 西門") != make_ptt_id("2025-01-11", "1/10 西門")
    assert make_ptt_id("2025-01-10", "x").startswith("ptt-")
