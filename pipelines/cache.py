# pipelines/cache.py
import json
import os
import tempfile
from pathlib import Path


def write_json_atomic(path: Path, data) -> None:
    """先寫同目錄暫存檔再 os.replace，避免中斷時留下半個檔案。"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def read_json(path: Path, default=None):
    path = Path(path)
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"[WARN] read {path.name}: {e}")
        return default


class JsonCache:
    """key → value 的永久快取（地址座標、PTT 標籤共用），整份載入、整份寫回。"""

    def __init__(self, path: Path | None = None, data: dict | None = None):
        self.path = Path(path) if path else None
        self.data: dict = dict(data or {})
        if self.path and data is None:
            self.data = read_json(self.path, {}) or {}
        self.dirty = False

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def get(self, key: str, default=None):
        return self.data.get(key, default)

    def set(self, key: str, value) -> None:
        self.data[key] = value
        self.dirty = True

    def save(self) -> bool:
        if not self.path or not self.dirty:
            return False
        try:
            write_json_atomic(self.path, self.data)
        except OSError as e:
            print(f"[ERROR] save cache {self.path.name}: {e}")
            return False
        self.dirty = False
        return True
