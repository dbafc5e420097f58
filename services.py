from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import bcrypt
from rapidfuzz.distance import Levenshtein
from sqlalchemy import Integer, and_, cast, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from forms import split_date_time
from models import Category, Client, Expense, Role, User
from schemas import (
    ALL,
    AuthContext,
    ExpenseIn,
    ExpenseOut,
    FilterCriteria,
    RegistrationIn,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    "Food",
    "Transport",
    "Housing",
    "Utilities",
    "Entertainment",
    "Health",
    "Shopping",
    "Education",
    "Travel",
    "Other",
)


class NotFound(ValueError):
    pass


class CategoryNotFound(NotFound):
    pass


class ExpenseNotFound(NotFound):
    pass


class ClientNotFound(NotFound):
    pass


class ValidationFailed(ValueError):
    pass


class UnresolvedReference(ValidationFailed):
    pass


class DuplicateUsername(ValidationFailed):
    pass


class AuthenticationFailed(ValueError):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        return self.session.scalars(select(Category).order_by(Category.name)).all()

    def find_by_name(self, name: str) -> Category:
        category = self.session.scalar(select(Category).where(Category.name == name))
        if category:
            return category
        message = f"Category '{name}' not found"
        suggestion = self._closest_name(name)
        if suggestion:
            message += f"; did you mean '{suggestion}'?"
        raise CategoryNotFound(message)

    def find_by_id(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise CategoryNotFound(f"Category {category_id} not found")
        return category

    def names_by_id(self, category_ids: Iterable[int]) -> dict[int, str]:
        ids = set(category_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(Category.id, Category.name).where(Category.id.in_(ids))
        ).all()
        return {row.id: row.name for row in rows}

    def seed_defaults(self) -> int:
        existing = set(self.session.scalars(select(Category.name)).all())
        missing = [name for name in DEFAULT_CATEGORIES if name not in existing]
        self.session.add_all([Category(name=name) for name in missing])
        self.session.commit()
        return len(missing)

    def _closest_name(self, name: str) -> Optional[str]:
        needle = name.strip().lower()
        if not needle:
            return None
        best: Optional[str] = None
        best_distance: Optional[int] = None
        for candidate in self.session.scalars(select(Category.name)).all():
            dist = int(Levenshtein.distance(needle, candidate.lower()))
            if best_distance is None or dist < best_distance:
                best, best_distance = candidate, dist
        if best_distance is not None and best_distance <= 2:
            return best
        return None


class UserService:
    STANDARD_ROLE = "ROLE_STANDARD"

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_username(self, username: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.username == username))

    def find_client_by_id(self, client_id: int) -> Client:
        client = self.session.get(Client, client_id)
        if not client:
            raise ClientNotFound(f"Client {client_id} not found")
        return client

    def find_role_by_name(self, name: str) -> Role:
        role = self.session.scalar(select(Role).where(Role.name == name))
        if role is None:
            role = Role(name=name)
            self.session.add(role)
            self.session.flush()
        return role

    def register(self, data: RegistrationIn) -> User:
        """
        Create the Client and its login User in one transaction.

        A taken username raises DuplicateUsername and leaves the store
        untouched.
        """
        if self.find_by_username(data.username) is not None:
            logger.info(
                f"registration_rejected: username={data.username} reason=duplicate"
            )
            raise DuplicateUsername(f"Username '{data.username}' is already taken")

        client = Client(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
        )
        try:
            self.session.add(client)
            self.session.flush()
            user = User(
                username=data.username,
                password_hash=hash_password(data.password),
                enabled=True,
                client_id=client.id,
                roles=[self.find_role_by_name(self.STANDARD_ROLE)],
            )
            self.session.add(user)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.info(
                f"registration_rejected: username={data.username} reason=constraint"
            )
            raise DuplicateUsername(
                f"Username '{data.username}' is already taken"
            ) from exc
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(user)
        logger.info(
            f"registration_completed: username={user.username} client_id={client.id}"
        )
        return user

    def authenticate(self, username: str, password: str) -> AuthContext:
        user = self.find_by_username(username)
        if user is None or not user.enabled:
            raise AuthenticationFailed("Invalid username or password")
        if not verify_password(password, user.password_hash):
            raise AuthenticationFailed("Invalid username or password")
        return self._context(user)

    def context_for_client(self, client_id: int) -> AuthContext:
        user = self.session.scalar(select(User).where(User.client_id == client_id))
        if user is None or not user.enabled:
            raise ClientNotFound(f"Client {client_id} not found")
        return self._context(user)

    @staticmethod
    def _context(user: User) -> AuthContext:
        return AuthContext(
            client_id=user.client_id,
            username=user.username,
            roles=tuple(sorted(role.name for role in user.roles)),
        )


def _criterion_int(value: str, label: str, upper: int) -> int:
    try:
        number = int(value.strip())
    except ValueError as exc:
        raise ValidationFailed(f"Invalid {label}: {value!r}") from exc
    if not 0 <= number <= upper:
        raise ValidationFailed(f"Invalid {label}: {value!r}")
    return number


def _is_all(value: Optional[str]) -> bool:
    return value is None or value.strip().lower() == ALL


class ExpenseFilter:
    """
    Conjunction of bound conditions over one client's expenses.

    Every criterion value reaches the database as a bound parameter.
    """

    def __init__(self, client_id: int) -> None:
        self.conditions: list[ColumnElement[bool]] = [Expense.client_id == client_id]

    def category(self, category_id: int) -> ExpenseFilter:
        self.conditions.append(Expense.category_id == category_id)
        return self

    def amount_between(self, low: int, high: int) -> ExpenseFilter:
        self.conditions.append(Expense.amount.between(low, high))
        return self

    def year(self, year: int) -> ExpenseFilter:
        self.conditions.append(
            cast(func.substr(Expense.date_time, 1, 4), Integer) == year
        )
        return self

    def month(self, month: int) -> ExpenseFilter:
        self.conditions.append(
            cast(func.substr(Expense.date_time, 6, 2), Integer) == month
        )
        return self

    def where(self) -> ColumnElement[bool]:
        return and_(*self.conditions)

    @classmethod
    def from_criteria(
        cls,
        criteria: FilterCriteria,
        client_id: int,
        categories: CategoryService,
    ) -> ExpenseFilter:
        # Numeric criteria are validated before any lookup.
        year = (
            None
            if _is_all(criteria.year)
            else _criterion_int(criteria.year, "year", 9999)
        )
        month = (
            None
            if _is_all(criteria.month)
            else _criterion_int(criteria.month, "month", 99)
        )

        expense_filter = cls(client_id)
        if not _is_all(criteria.category):
            expense_filter.category(categories.find_by_name(criteria.category).id)
        expense_filter.amount_between(criteria.amount_from, criteria.amount_to)
        if year is not None:
            expense_filter.year(year)
        if month is not None:
            expense_filter.month(month)
        return expense_filter


class ExpenseService:
    def __init__(self, session: Session, context: AuthContext) -> None:
        self.session = session
        self.context = context
        self.categories = CategoryService(session)

    def create(self, data: ExpenseIn) -> int:
        client = self.session.get(Client, self.context.client_id)
        if client is None:
            raise UnresolvedReference(f"Client {self.context.client_id} not found")
        category = self._resolve_category(data.category)
        expense = Expense(
            amount=data.amount,
            date_time=data.date_time,
            description=data.description,
            category_id=category.id,
            client_id=client.id,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        logger.info(f"expense_created: id={expense.id} client_id={client.id}")
        return expense.id

    def update(self, expense_id: int, data: ExpenseIn) -> None:
        # Missing ids are skipped without error; callers cannot rely on this
        # to confirm the expense exists.
        expense = self._owned(expense_id)
        if expense is None:
            logger.info(
                f"expense_update_skipped: id={expense_id} "
                f"client_id={self.context.client_id}"
            )
            return
        category = self._resolve_category(data.category)
        expense.amount = data.amount
        expense.date_time = data.date_time
        expense.description = data.description
        expense.category_id = category.id
        self.session.commit()
        logger.info(
            f"expense_updated: id={expense_id} client_id={self.context.client_id}"
        )

    def delete_by_id(self, expense_id: int) -> None:
        result = self.session.execute(
            delete(Expense).where(
                Expense.id == expense_id,
                Expense.client_id == self.context.client_id,
            )
        )
        self.session.commit()
        logger.info(
            f"expense_deleted: id={expense_id} client_id={self.context.client_id} "
            f"rows={result.rowcount}"
        )

    def find_by_id(self, expense_id: int) -> Expense:
        expense = self._owned(expense_id)
        if expense is None:
            raise ExpenseNotFound(f"Expense {expense_id} not found")
        return expense

    def find_all_by_client_id(self) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.client_id == self.context.client_id)
            .order_by(Expense.id)
        )
        return list(self.session.scalars(stmt).all())

    def find_all(self) -> list[Expense]:
        # Unscoped; no route calls this.
        return list(self.session.scalars(select(Expense).order_by(Expense.id)).all())

    def filter(self, criteria: FilterCriteria) -> list[Expense]:
        expense_filter = ExpenseFilter.from_criteria(
            criteria, self.context.client_id, self.categories
        )
        stmt = select(Expense).where(expense_filter.where()).order_by(Expense.id)
        expenses = list(self.session.scalars(stmt).all())
        logger.info(
            f"expense_filter: client_id={self.context.client_id} "
            f"category={criteria.category} year={criteria.year} "
            f"month={criteria.month} matches={len(expenses)}"
        )
        return expenses

    def _owned(self, expense_id: int) -> Optional[Expense]:
        return self.session.scalar(
            select(Expense).where(
                Expense.id == expense_id,
                Expense.client_id == self.context.client_id,
            )
        )

    def _resolve_category(self, name: str) -> Category:
        try:
            return self.categories.find_by_name(name)
        except CategoryNotFound as exc:
            raise UnresolvedReference(str(exc)) from exc


def present_expenses(session: Session, expenses: Sequence[Expense]) -> list[ExpenseOut]:
    names = CategoryService(session).names_by_id(e.category_id for e in expenses)
    presented: list[ExpenseOut] = []
    for expense in expenses:
        if expense.category_id not in names:
            raise CategoryNotFound(f"Category {expense.category_id} not found")
        day, clock = split_date_time(expense.date_time)
        presented.append(
            ExpenseOut(
                id=expense.id,
                amount=expense.amount,
                date_time=expense.date_time,
                description=expense.description,
                category_name=names[expense.category_id],
                date=day,
                time=clock,
            )
        )
    return presented
