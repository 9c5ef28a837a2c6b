from __future__ import annotations

import random
from contextlib import contextmanager

from sovereign import content, db
from sovereign.clock import Clock
from sovereign.config import Settings, load_settings
from sovereign.engine import ProgressionEngine
from sovereign.generator import build_generator


def open_engine(settings: Settings | None = None, *, clock: Clock | None = None, rng: random.Random | None = None) -> ProgressionEngine:
    """Load (and repair) the configured user's state from SQLite."""
    settings = settings or load_settings()
    db.configure(settings.db_path)
    return ProgressionEngine.load(
        db.SqliteSnapshotStore(),
        settings.user_id,
        clock=clock or Clock(settings.timezone),
        rng=rng,
        generator=build_generator(settings.generator_url, settings.generator_timeout, settings.generator_api_key),
        pack=content.load_content_pack(settings.content_pack),
    )


@contextmanager
def engine_session(settings: Settings | None = None, **kwargs):
    # reconcile on the way in, persist on the way out even if the body raises
    engine = open_engine(settings, **kwargs)
    try:
        engine.run_daily_reconciliation()
        yield engine
    finally:
        engine.save()
