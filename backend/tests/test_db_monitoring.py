from __future__ import annotations

from sqlalchemy import create_engine, text

from quizquest.db import monitoring


def test_instrument_engine_emits_pool_status(monkeypatch) -> None:
    emitted: list[tuple[str, dict[str, object]]] = []

    def record(event_name: str, **payload: object) -> None:
        emitted.append((event_name, payload))

    monkeypatch.setattr(monitoring, "_TELEMETRY_INTERVAL", 0)
    monkeypatch.setattr(monitoring, "emit_event", record)

    engine = create_engine("sqlite:///:memory:", future=True)
    try:
        monitoring.instrument_engine(engine)
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        assert emitted, "Expected a db_pool_status event once the pool is used."
        event_name, payload = emitted[0]
        assert event_name == "db_pool_status"
        assert payload["trigger"] == "connect"
        assert payload["connects"] >= 1
    finally:
        engine.dispose()


def test_pool_events_are_throttled(monkeypatch) -> None:
    emitted: list[str] = []

    monkeypatch.setattr(monitoring, "_TELEMETRY_INTERVAL", 3600)
    monkeypatch.setattr(monitoring, "emit_event", lambda event_name, **_: emitted.append(event_name))

    engine = create_engine("sqlite:///:memory:", future=True)
    try:
        monitoring.instrument_engine(engine)
        for _ in range(3):
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        assert emitted == ["db_pool_status"]
        snapshot = monitoring.get_pool_snapshot(engine)
        assert snapshot["checkouts"] >= 3
        assert snapshot["checkins"] >= 3
    finally:
        engine.dispose()
