import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Client, Expense
from schemas import AuthContext, ExpenseIn
from services import (
    CategoryService,
    ExpenseNotFound,
    ExpenseService,
    UnresolvedReference,
    present_expenses,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    CategoryService(session).seed_defaults()
    return session


def add_client(session, first_name: str = "Ada") -> AuthContext:
    client = Client(
        first_name=first_name, last_name="Lovelace", email="ada@example.com"
    )
    session.add(client)
    session.commit()
    return AuthContext(client_id=client.id, username=first_name.lower())


def test_created_expense_is_listed_with_display_fields() -> None:
    session = make_session()
    ctx = add_client(session)
    service = ExpenseService(session, ctx)

    service.create(
        ExpenseIn(
            amount=50,
            category="Food",
            date_time="2024-01-15T09:30:00",
            description="Groceries",
        )
    )

    listed = present_expenses(session, service.find_all_by_client_id())
    assert len(listed) == 1
    assert listed[0].category_name == "Food"
    assert listed[0].date == "2024-01-15"
    assert listed[0].time == "09:30:00"
    assert listed[0].amount == 50
    assert listed[0].description == "Groceries"


def test_date_time_is_stored_with_seconds() -> None:
    session = make_session()
    ctx = add_client(session)
    service = ExpenseService(session, ctx)

    expense_id = service.create(
        ExpenseIn(amount=12, category="Transport", date_time="2024-03-02T18:05")
    )

    assert service.find_by_id(expense_id).date_time == "2024-03-02T18:05:00"


def test_create_with_unknown_category_is_rejected() -> None:
    session = make_session()
    ctx = add_client(session)

    with pytest.raises(UnresolvedReference):
        ExpenseService(session, ctx).create(
            ExpenseIn(amount=5, category="Gadgets", date_time="2024-01-01T10:00:00")
        )
    assert session.scalar(select(func.count(Expense.id))) == 0


def test_create_for_unknown_client_is_rejected() -> None:
    session = make_session()
    ctx = AuthContext(client_id=999, username="ghost")

    with pytest.raises(UnresolvedReference):
        ExpenseService(session, ctx).create(
            ExpenseIn(amount=5, category="Food", date_time="2024-01-01T10:00:00")
        )


def test_update_replaces_fields() -> None:
    session = make_session()
    ctx = add_client(session)
    service = ExpenseService(session, ctx)
    expense_id = service.create(
        ExpenseIn(amount=10, category="Food", date_time="2024-01-01T08:00:00")
    )

    service.update(
        expense_id,
        ExpenseIn(
            amount=99,
            category="Health",
            date_time="2024-02-03T07:15:00",
            description="Pharmacy",
        ),
    )

    expense = service.find_by_id(expense_id)
    health = CategoryService(session).find_by_name("Health")
    assert expense.amount == 99
    assert expense.category_id == health.id
    assert expense.date_time == "2024-02-03T07:15:00"
    assert expense.description == "Pharmacy"
    assert expense.client_id == ctx.client_id


def test_update_of_missing_expense_is_a_no_op() -> None:
    session = make_session()
    ctx = add_client(session)
    service = ExpenseService(session, ctx)
    expense_id = service.create(
        ExpenseIn(amount=10, category="Food", date_time="2024-01-01T08:00:00")
    )

    service.update(
        expense_id + 100,
        ExpenseIn(amount=1, category="Food", date_time="2024-01-01T08:00:00"),
    )

    assert [e.amount for e in service.find_all()] == [10]


def test_update_of_another_clients_expense_is_a_no_op() -> None:
    session = make_session()
    owner = add_client(session, "Ada")
    intruder = add_client(session, "Eve")
    expense_id = ExpenseService(session, owner).create(
        ExpenseIn(amount=10, category="Food", date_time="2024-01-01T08:00:00")
    )

    ExpenseService(session, intruder).update(
        expense_id,
        ExpenseIn(amount=1, category="Other", date_time="2024-01-01T08:00:00"),
    )

    assert ExpenseService(session, owner).find_by_id(expense_id).amount == 10


def test_delete_is_idempotent() -> None:
    session = make_session()
    ctx = add_client(session)
    service = ExpenseService(session, ctx)
    expense_id = service.create(
        ExpenseIn(amount=10, category="Food", date_time="2024-01-01T08:00:00")
    )

    service.delete_by_id(expense_id)
    service.delete_by_id(expense_id)
    service.delete_by_id(12345)

    assert service.find_all_by_client_id() == []
    with pytest.raises(ExpenseNotFound):
        service.find_by_id(expense_id)


def test_delete_leaves_other_clients_expense_alone() -> None:
    session = make_session()
    owner = add_client(session, "Ada")
    intruder = add_client(session, "Eve")
    expense_id = ExpenseService(session, owner).create(
        ExpenseIn(amount=10, category="Food", date_time="2024-01-01T08:00:00")
    )

    ExpenseService(session, intruder).delete_by_id(expense_id)

    assert ExpenseService(session, owner).find_by_id(expense_id).amount == 10


def test_listing_is_scoped_to_client_and_find_all_is_not() -> None:
    session = make_session()
    ada = add_client(session, "Ada")
    bob = add_client(session, "Bob")
    ExpenseService(session, ada).create(
        ExpenseIn(amount=1, category="Food", date_time="2024-01-01T08:00:00")
    )
    ExpenseService(session, bob).create(
        ExpenseIn(amount=2, category="Food", date_time="2024-01-01T08:00:00")
    )

    ada_service = ExpenseService(session, ada)
    bob_service = ExpenseService(session, bob)
    assert [e.amount for e in ada_service.find_all_by_client_id()] == [1]
    assert [e.amount for e in bob_service.find_all_by_client_id()] == [2]
    assert sorted(e.amount for e in ada_service.find_all()) == [1, 2]
