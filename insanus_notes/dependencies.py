from functools import lru_cache

from insanus_notes.config import load_settings
from insanus_notes.domain.ports import EntityStore
from insanus_notes.store.file_store import FileEntityStore
from insanus_notes.store.supabase_store import SupabaseEntityStore, create_supabase_client


@lru_cache()
def get_settings():
    return load_settings()


@lru_cache()
def get_store() -> EntityStore:
    settings = get_settings()
    if settings.store_backend == "supabase":
        client = create_supabase_client(settings.supabase_url, settings.supabase_key)
        return SupabaseEntityStore(client, default_title=settings.default_note_title)
    return FileEntityStore(settings.data_dir, default_title=settings.default_note_title)
