from __future__ import annotations
import re
from typing import Optional

_BARE_ID = re.compile(r"^[a-zA-Z0-9_-]+$")
_FOLDERS_PATH = re.compile(r"/folders/([a-zA-Z0-9_-]+)")
_ID_PARAM = re.compile(r"[?&]id=([a-zA-Z0-9_-]+)")
_VALID_ID = re.compile(r"^[a-zA-Z0-9_-]{20,}$")


def extract_folder_id_from_url(url_or_id: Optional[str]) -> Optional[str]:
    """
    Folder id from any of:
      https://drive.google.com/drive/folders/<id>
      https://drive.google.com/drive/u/0/folders/<id>
      https://drive.google.com/open?id=<id>
      <id>
    Returns None when nothing id-shaped is found.
    """
    if not url_or_id or not isinstance(url_or_id, str):
        return None

    trimmed = url_or_id.strip()
    if _BARE_ID.match(trimmed):
        return trimmed

    m = _FOLDERS_PATH.search(trimmed)
    if m:
        return m.group(1)

    m = _ID_PARAM.search(trimmed)
    if m:
        return m.group(1)

    return None


def is_valid_folder_id(folder_id: Optional[str]) -> bool:
    # Drive ids are ~33 chars of [A-Za-z0-9_-]
    if not folder_id or not isinstance(folder_id, str):
        return False
    return bool(_VALID_ID.match(folder_id.strip()))


def generate_folder_link(folder_id: str) -> str:
    return f"https://drive.google.com/drive/folders/{folder_id}"
