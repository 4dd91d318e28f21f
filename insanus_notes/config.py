from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    store_backend: str
    supabase_url: str | None
    supabase_key: str | None
    autosave_delay_ms: int
    default_note_title: str
    api_debug_log: bool

    @property
    def autosave_delay_s(self) -> float:
        return self.autosave_delay_ms / 1000.0


def load_settings() -> Settings:
    data_dir = Path(os.environ.get("DATA_DIR", "./data")).resolve()
    store_backend = os.environ.get("STORE_BACKEND", "file").strip().lower()
    supabase_url = os.environ.get("SUPABASE_URL")
    supabase_key = os.environ.get("SUPABASE_KEY") or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    autosave_delay_ms = int(os.environ.get("AUTOSAVE_DELAY_MS", "1500"))
    default_note_title = os.environ.get("DEFAULT_NOTE_TITLE", "Sin titulo")
    api_debug_log = os.environ.get("API_DEBUG_LOG", "false").lower() == "true"
    return Settings(
        data_dir=data_dir,
        store_backend=store_backend,
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        autosave_delay_ms=autosave_delay_ms,
        default_note_title=default_note_title,
        api_debug_log=api_debug_log,
    )
