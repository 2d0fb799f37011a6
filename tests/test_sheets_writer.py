from gspread.exceptions import WorksheetNotFound

from sheets_writer import COLUMNS, mirror_month, to_rows

BY_DATE = {
    "2025-01-10": [
        {"id": "a", "activityDate": "2025-01-10", "time": "09:00", "center": "台北", "organization": "甲",
         "location": "某路", "tags": ["電影票", "禮券"], "coordinates": {"lat": 25.0, "lng": 121.5},
         "pttData": {"rawLine": "1/10 某路", "images": ["i1", "i2"]}, "isPttOnly": False},
        {"id": "b", "activityDate": "2025-01-10", "center": "PTT", "organization": "PTT 網友分享",
         "location": "西門", "tags": [], "isPttOnly": True, "detailUrl": "https://ptt"},
    ],
}


def _row(id_, day):
    return [id_, day] + [""] * (len(COLUMNS) - 2)


class FakeWorksheet:
    def __init__(self, title, values=None):
        self.title = title
        self.values = [list(r) for r in (values or [])]
        self.frozen = 0

    def get_all_values(self):
        return [list(r) for r in self.values]

    def clear(self):
        self.values = []

    def update(self, values=None, range_name=None, value_input_option=None):
        assert range_name == "A1"
        self.values = [list(r) for r in values]

    def freeze(self, rows=0):
        self.frozen = rows


class FakeSpreadsheet:
    def __init__(self, sheets):
        self.sheets = {ws.title: ws for ws in sheets}

    def worksheet(self, name):
        if name not in self.sheets:
            raise WorksheetNotFound(name)
        return self.sheets[name]

    def add_worksheet(self, title, rows, cols):
        self.sheets[title] = FakeWorksheet(title)
        return self.sheets[title]


class FakeClient:
    def __init__(self, sh):
        self.sh = sh
        self.opened = []

    def open_by_key(self, key):
        self.opened.append(key)
        return self.sh


def test_to_rows_flattens_events():
    rows = to_rows(BY_DATE)
    assert [r["id"] for r in rows] == ["a", "b"]
    assert rows[0]["tags"] == "禮券;電影票"
    assert rows[0]["pttImages"] == "i1;i2"
    assert rows[0]["lat"] == 25.0
    assert rows[1]["isPttOnly"] == "TRUE"
    assert rows[1]["time"] == "" and rows[1]["lat"] == ""
    assert set(rows[0]) == set(COLUMNS)

def test_mirror_creates_tab_with_header(monkeypatch):
    monkeypatch.setenv("SHEET_ID", "sheet-123")
    client = FakeClient(FakeSpreadsheet([]))
    assert mirror_month(BY_DATE, 2025, 1, sheet_name="Blood", client=client) == (2, 0)
    ws = client.sh.sheets["Blood"]
    assert ws.values[0] == COLUMNS
    assert [r[0] for r in ws.values[1:]] == ["a", "b"]
    assert ws.values[1][6] == "禮券;電影票"
    assert ws.frozen == 1
    assert client.opened == ["sheet-123"]

def test_mirror_replaces_only_the_given_month(monkeypatch):
    monkeypatch.setenv("SHEET_ID", "sheet-123")
    monkeypatch.delenv("SHEET_NAME", raising=False)
    ws = FakeWorksheet("BloodEvents", [
        COLUMNS,
        _row("old-dec", "2024-12-30"),
        _row("a", "2025-01-10"),
        _row("gone", "2025-01-11"),
        _row("feb", "2025-02-01"),
    ])
    client = FakeClient(FakeSpreadsheet([ws]))

    written, removed = mirror_month(BY_DATE, 2025, 1, client=client)
    assert (written, removed) == (2, 1)
    assert [r[0] for r in ws.values[1:]] == ["old-dec", "a", "b", "feb"]
    # a 被新資料整列取代
    assert ws.values[2][3] == "台北"
