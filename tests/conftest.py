from __future__ import annotations

from typing import Any, Callable, Dict, List, Sequence

import pytest
from sqlalchemy import Column, Float, Integer, MetaData, String, Table, create_engine, insert, select

from community_admin.remote import SQLRemoteDataClient
from community_admin.storage import LocalFileStorage

metadata = MetaData()


def _table(name: str, *columns: Column) -> Table:
    return Table(name, metadata, Column("id", Integer, primary_key=True), *columns)


def _text(*names: str) -> List[Column]:
    return [Column(name, String) for name in names]


_table(
    "profiles",
    Column("family_no", Integer),
    *_text(
        "name",
        "surname",
        "email",
        "mobile_no1",
        "gender",
        "relationship",
        "date_of_birth",
        "profile_pic",
        "family_cover_pic",
        "residential_address_line1",
        "residential_address_city",
        "residential_address_state",
        "pin_code",
        "updated_at",
    ),
)
_table("doctors", *_text("name", "specialization", "qualification", "created_at"))
_table("committee", *_text("name", "member_name", "phone", "location", "created_at"))
_table("articles", *_text("title", "body", "created_at"))

_EVENT_COLUMNS = ("user_id", "name", "description", "start_at", "duration", "organizers", "image_url", "created_at")
_table("events", *_text(*_EVENT_COLUMNS))
_table("event_applications", *_text(*_EVENT_COLUMNS, "status"))

_DONATION_COLUMNS = ("user_id", "description", "cause", "open_till", "image_url", "created_at", "submitted_at")
_table("donations", Column("amount", Float), *_text(*_DONATION_COLUMNS))
_table("donation_applications", Column("amount", Float), *_text(*_DONATION_COLUMNS, "status"))

_table("education_loan_applications", *_text("full_name", "institution_name", "status", "created_at"))
_table("business_loan_applications", *_text("business_name", "nature_of_business", "status", "created_at"))
_table("girls_hostel_form", *_text("applicant_name", "institution", "status", "created_at"))
_table("mulund_hostel_form", *_text("applicant_name", "institution", "status", "created_at"))
_table("vatsalyadham_form", *_text("applicant_name", "status", "created_at"))
_table("nari_sahas", *_text("user_id", "name"))
_table("shubh_chintak", *_text("title", "cover_image_name", "file_url", "created_at"))


@pytest.fixture
def engine(tmp_path):
    # file backed so concurrent worker threads each get their own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'admin.db'}",
        connect_args={"check_same_thread": False},
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(str(tmp_path / "media"), public_base_url="/media")


@pytest.fixture
def client(engine, storage) -> SQLRemoteDataClient:
    return SQLRemoteDataClient(engine, storage=storage)


@pytest.fixture
def seed(engine) -> Callable[[str, Sequence[Dict[str, Any]]], None]:
    def _seed(table: str, rows: Sequence[Dict[str, Any]]) -> None:
        with engine.begin() as connection:
            for row in rows:
                connection.execute(insert(metadata.tables[table]).values(**row))

    return _seed


@pytest.fixture
def fetch(engine) -> Callable[[str], List[Dict[str, Any]]]:
    def _fetch(table: str) -> List[Dict[str, Any]]:
        source = metadata.tables[table]
        with engine.connect() as connection:
            return [dict(row) for row in connection.execute(select(source).order_by(source.c.id)).mappings()]

    return _fetch


def make_members(count: int, **overrides: Any) -> List[Dict[str, Any]]:
    return [
        {
            "id": index,
            "name": f"Member {index:02d}",
            "surname": "Shah",
            "gender": "Male" if index % 2 else "Female",
            "family_no": 100 + index % 5,
            "updated_at": f"2024-01-{index:02d}T00:00:00",
            **overrides,
        }
        for index in range(1, count + 1)
    ]


@pytest.fixture
def members() -> Callable[..., List[Dict[str, Any]]]:
    return make_members
