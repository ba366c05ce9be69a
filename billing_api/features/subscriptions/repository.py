"""
Persistence helpers for the Account aggregate and the plan catalog.

Every subscription change loads the whole account, mutates it, and saves
it once. There is no version check: two concurrent requests against the
same account can overwrite each other (last write wins).
"""
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_api.core.errors import NotFoundError, PersistenceError
from billing_api.models import Account, Plan, Subscription, User


class AccountRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_reference(self, reference: str) -> Optional[Account]:
        return self.session.execute(
            select(Account).where(Account.reference == reference)
        ).scalar_one_or_none()

    def get_by_user_reference(self, user_reference: str) -> Optional[Account]:
        user = self.session.execute(
            select(User).where(User.reference == user_reference)
        ).scalar_one_or_none()
        if user is None:
            return None
        return self.session.get(Account, user.account_id)

    def get_by_payment_customer_id(self, customer_id: str) -> Optional[Account]:
        return self.session.execute(
            select(Account).where(Account.payment_customer_id == customer_id)
        ).scalars().first()

    def resolve(self, account_reference: Optional[str] = None, user_reference: Optional[str] = None) -> Account:
        """Find the account directly or through one of its users."""
        if account_reference:
            account = self.get_by_reference(account_reference)
            if account is None:
                raise NotFoundError(f"Account {account_reference} not found")
            return account
        if user_reference:
            account = self.get_by_user_reference(user_reference)
            if account is None:
                raise NotFoundError(f"User {user_reference} not found")
            return account
        raise NotFoundError("Account not found")

    def users_for(self, account: Account) -> List[User]:
        return list(
            self.session.execute(
                select(User).where(User.account_id == account.id).order_by(User.id)
            ).scalars()
        )

    def save(self, account: Account) -> Account:
        try:
            self.session.add(account)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"Could not save account {account.reference}: {exc}") from exc
        return account

    def discard(self) -> None:
        """Drop unsaved changes after a failed pipeline step."""
        self.session.rollback()


class PlanRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_reference(self, reference: str) -> Optional[Plan]:
        return self.session.execute(
            select(Plan).where(Plan.reference == reference)
        ).scalar_one_or_none()

    def get_many(self, plan_ids: Iterable[int]) -> List[Plan]:
        ids = sorted(set(plan_ids))
        if not ids:
            return []
        return list(self.session.execute(select(Plan).where(Plan.id.in_(ids))).scalars())

    def plans_for_subscriptions(self, subscriptions: Iterable[Subscription]) -> List[Plan]:
        return self.get_many(sub.plan_id for sub in subscriptions)
