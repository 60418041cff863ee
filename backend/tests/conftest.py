"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths for the backend package, an
    in-process fake of the Motor collections the services touch, and
    fixtures that install it as `app.database.db`.
"""

from __future__ import annotations

import asyncio
import copy
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

from bson import ObjectId  # noqa: E402
from pymongo.errors import DuplicateKeyError  # noqa: E402

_MISSING = object()


def _get_path(doc: dict, path: str):
    cur = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _set_path(doc: dict, path: str, value) -> None:
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        if not isinstance(cur.get(part), dict):
            cur[part] = {}
        cur = cur[part]
    cur[parts[-1]] = value


def _compare(value, op: str, arg) -> bool:
    if op == "$in":
        return value is not _MISSING and value in arg
    if op == "$nin":
        return value is _MISSING or value not in arg
    if op == "$ne":
        return (None if value is _MISSING else value) != arg
    if value is _MISSING or value is None:
        return False
    if op == "$gt":
        return value > arg
    if op == "$gte":
        return value >= arg
    if op == "$lt":
        return value < arg
    if op == "$lte":
        return value <= arg
    raise NotImplementedError(op)


def _matches(doc: dict, query: dict | None) -> bool:
    for key, cond in (query or {}).items():
        value = _get_path(doc, key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            if not all(_compare(value, op, arg) for op, arg in cond.items()):
                return False
        elif (None if value is _MISSING else value) != cond:
            return False
    return True


def _project(doc: dict, projection: dict | None) -> dict:
    out = copy.deepcopy(doc)
    if not projection:
        return out
    include = {k for k, v in projection.items() if v and k != "_id"}
    if include:
        out = {k: v for k, v in out.items() if k in include or k == "_id"}
    if projection.get("_id", 1) == 0:
        out.pop("_id", None)
    return out


def _sort_key(field: str):
    def key(doc: dict):
        value = _get_path(doc, field)
        absent = value is _MISSING or value is None
        return (absent, 0 if absent else value)
    return key


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._limit: int | None = None

    def sort(self, key, direction: int | None = None):
        keys = key if isinstance(key, list) else [(key, direction or 1)]
        for field, dirn in reversed(keys):
            self._docs.sort(key=_sort_key(field), reverse=dirn == -1)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length: int | None = None):
        docs = self._docs
        if self._limit:
            docs = docs[: self._limit]
        if length is not None:
            docs = docs[:length]
        return list(docs)


class FakeCollection:
    """Just enough of a Motor collection for the services under test."""

    def __init__(self, unique: list[tuple[str, ...]] | None = None):
        self.docs: list[dict] = []
        self.unique = unique or []
        # op name -> exception raised once by the next call of that op
        self.fail_once: dict[str, Exception] = {}

    def _maybe_fail(self, op: str) -> None:
        exc = self.fail_once.pop(op, None)
        if exc is not None:
            raise exc

    def _check_unique(self, candidate: dict) -> None:
        for fields in self.unique:
            key = tuple(_get_path(candidate, f) for f in fields)
            for doc in self.docs:
                if doc is candidate or doc.get("_id") == candidate.get("_id"):
                    continue
                if tuple(_get_path(doc, f) for f in fields) == key:
                    raise DuplicateKeyError(f"E11000 duplicate key error: {fields}")

    def _apply(self, doc: dict, update: dict, *, inserting: bool) -> None:
        for path, value in update.get("$set", {}).items():
            _set_path(doc, path, copy.deepcopy(value))
        if inserting:
            for path, value in update.get("$setOnInsert", {}).items():
                _set_path(doc, path, copy.deepcopy(value))
        for path, value in update.get("$inc", {}).items():
            current = _get_path(doc, path)
            _set_path(doc, path, (0 if current is _MISSING else current) + value)

    def _upsert_base(self, query: dict) -> dict:
        base = {
            k: copy.deepcopy(v) for k, v in query.items()
            if not (isinstance(v, dict) and any(str(x).startswith("$") for x in v))
        }
        base.setdefault("_id", ObjectId())
        return base

    async def create_index(self, *args, **kwargs):
        return "ok"

    async def find_one(self, query: dict | None = None, projection: dict | None = None):
        await asyncio.sleep(0)
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query: dict | None = None, projection: dict | None = None):
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query)])

    async def distinct(self, field: str, query: dict | None = None):
        await asyncio.sleep(0)
        out = []
        for doc in self.docs:
            value = _get_path(doc, field)
            if _matches(doc, query) and value is not _MISSING and value not in out:
                out.append(value)
        return out

    async def insert_one(self, doc: dict):
        await asyncio.sleep(0)
        self._maybe_fail("insert_one")
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self._check_unique(stored)
        self.docs.append(stored)
        doc.setdefault("_id", stored["_id"])
        return SimpleNamespace(inserted_id=stored["_id"])

    async def insert_many(self, docs: list[dict]):
        ids = [(await self.insert_one(d)).inserted_id for d in docs]
        return SimpleNamespace(inserted_ids=ids)

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        await asyncio.sleep(0)
        self._maybe_fail("update_one")
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update, inserting=False)
                return SimpleNamespace(matched_count=1, modified_count=int(before != doc), upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = self._upsert_base(query)
        self._apply(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])

    async def update_many(self, query: dict, update: dict):
        await asyncio.sleep(0)
        modified = 0
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update, inserting=False)
                modified += int(before != doc)
        return SimpleNamespace(modified_count=modified)

    async def find_one_and_update(self, query: dict, update: dict, upsert: bool = False,
                                  return_document=False, projection: dict | None = None):
        await asyncio.sleep(0)
        self._maybe_fail("find_one_and_update")
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update, inserting=False)
                return _project(doc if return_document else before, projection)
        if not upsert:
            return None
        doc = self._upsert_base(query)
        self._apply(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return _project(doc, projection) if return_document else None

    async def replace_one(self, query: dict, replacement: dict, upsert: bool = False):
        await asyncio.sleep(0)
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                new = copy.deepcopy(replacement)
                new["_id"] = doc["_id"]
                self._check_unique(new)
                self.docs[i] = new
                return SimpleNamespace(matched_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, upserted_id=None)
        new = copy.deepcopy(replacement)
        new.setdefault("_id", ObjectId())
        self._check_unique(new)
        self.docs.append(new)
        return SimpleNamespace(matched_count=0, upserted_id=new["_id"])

    async def delete_one(self, query: dict):
        await asyncio.sleep(0)
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query: dict):
        await asyncio.sleep(0)
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _matches(d, query)]
        return SimpleNamespace(deleted_count=before - len(self.docs))


class FakeDatabase:
    _UNIQUE = {
        "picks": [("user_id", "week", "season")],
        "used_td_scorers": [("user_id", "season", "player_id")],
        "weekly_scores": [("user_id", "week", "season")],
        "season_totals": [("user_id", "season")],
    }

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        collection = FakeCollection(unique=self._UNIQUE.get(name))
        setattr(self, name, collection)
        return collection

    async def command(self, name: str):
        return {"ok": 1.0}


@pytest.fixture
def fake_db(monkeypatch):
    import app.database as _db

    db = FakeDatabase()
    monkeypatch.setattr(_db, "db", db, raising=False)
    return db


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 9, 14, 12, 0, tzinfo=timezone.utc))


def make_game(
    game_id: str,
    kickoff_at: datetime,
    *,
    week: int = 3,
    season: int = 2025,
    home: str | None = None,
    away: str | None = None,
    status: str = "scheduled",
    home_score: int | None = None,
    away_score: int | None = None,
    td_scorers: list[str] | None = None,
) -> dict:
    return {
        "_id": game_id,
        "week": week,
        "season": season,
        "home_team": home or f"{game_id}-HOME",
        "away_team": away or f"{game_id}-AWAY",
        "kickoff_at": kickoff_at,
        "status": status,
        "home_score": home_score,
        "away_score": away_score,
        "touchdown_scorer_ids": td_scorers or [],
    }
