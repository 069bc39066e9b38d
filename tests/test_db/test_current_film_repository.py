# tests/test_db/test_current_film_repository.py

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.db.models.current_film import CurrentFilm
from app.repositories.current_film import SqlCurrentFilmRepository, is_unique_violation
from app.schemas.enums import InsertOutcome

pytestmark = pytest.mark.anyio


def _attrs(n=1):
    return {
        "title": f"Film {n}",
        "description": f"Description {n}",
        "video_url": f"https://b/ad_films/film_{n}/output.manifest",
        "teaser_url": "https://b/short_films/teaser/output.manifest",
    }


async def test_create_get_delete_cycle(db_session):
    repo = SqlCurrentFilmRepository(db_session)
    assert await repo.get() is None

    film = await repo.create(**_attrs(1))
    assert isinstance(film, CurrentFilm)
    assert film.lock_key == 1

    got = await repo.get()
    assert got is not None and got.title == "Film 1"

    assert await repo.delete() is True
    assert await repo.get() is None
    assert await repo.delete() is False


async def test_second_create_reports_already_exists_and_keeps_first(db_session):
    repo = SqlCurrentFilmRepository(db_session)
    await repo.create(**_attrs(1))

    outcome = await repo.create(**_attrs(2))
    assert outcome is InsertOutcome.ALREADY_EXISTS

    stored = await repo.get()
    assert stored.title == "Film 1"
    assert stored.video_url == _attrs(1)["video_url"]


async def test_delete_frees_the_slot(db_session):
    repo = SqlCurrentFilmRepository(db_session)
    await repo.create(**_attrs(1))
    await repo.delete()
    film = await repo.create(**_attrs(2))
    assert isinstance(film, CurrentFilm)
    assert film.title == "Film 2"


async def test_concurrent_creates_yield_exactly_one_winner(session_factory):
    async def attempt(n):
        async with session_factory() as session:
            return await SqlCurrentFilmRepository(session).create(**_attrs(n))

    outcomes = await asyncio.gather(*(attempt(n) for n in range(8)))

    winners = [o for o in outcomes if isinstance(o, CurrentFilm)]
    assert len(winners) == 1
    assert all(o is InsertOutcome.ALREADY_EXISTS for o in outcomes if o not in winners)

    async with session_factory() as s:
        count = (await s.execute(select(func.count()).select_from(CurrentFilm))).scalar_one()
    assert count == 1


def test_is_unique_violation_variants():
    class PgError(Exception):
        sqlstate = "23505"

    class FkError(Exception):
        sqlstate = "23503"

    assert is_unique_violation(IntegrityError("INSERT", {}, PgError("dup")))
    assert is_unique_violation(
        IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: current_film.lock_key"))
    )
    assert not is_unique_violation(IntegrityError("INSERT", {}, FkError("fk")))
