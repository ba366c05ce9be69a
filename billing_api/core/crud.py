"""
Generic CRUD resource.

Builds an APIRouter with list/create/read/update/delete for one ORM model,
addressed by an identifying key (e.g. `reference`) instead of the internal id.

Hooks run around each action:

    resource.before(hook, only=["create"])   # may mutate ctx.body
    resource.after(hook, only=["list"])      # may mutate or replace ctx.result

`ctx.result` holds plain dicts (from `to_dict()`), a list for `list`.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from billing_api.core.database import get_db
from billing_api.core.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger("billing_api.crud")

ACTIONS = ("list", "create", "read", "update", "delete")


@dataclass
class HookContext:
    action: str
    db: Session
    request: Optional[Request] = None
    key: Optional[str] = None
    body: Dict[str, Any] = field(default_factory=dict)
    instance: Any = None
    result: Any = None


Hook = Callable[[HookContext], None]


@dataclass
class _Registration:
    hook: Hook
    only: Optional[Sequence[str]] = None

    def applies_to(self, action: str) -> bool:
        return self.only is None or action in self.only


class CrudResource:
    def __init__(
        self,
        model,
        *,
        prefix: str,
        fields: Dict[str, str],
        identifying_key: str = "reference",
        tags: Optional[List[str]] = None,
        actions: Iterable[str] = ACTIONS,
    ):
        """
        Args:
            model: SQLAlchemy model with a `to_dict()` method
            prefix: Mount point, e.g. "/api/plans"
            fields: JSON field name -> model attribute, for writable fields only
            identifying_key: Model attribute used in URLs and for uniqueness
            actions: Subset of ACTIONS to expose
        """
        self.model = model
        self.prefix = prefix
        self.fields = fields
        self.identifying_key = identifying_key
        self.tags = tags or [prefix.rsplit("/", 1)[-1]]
        self.actions = tuple(actions)
        self._before: List[_Registration] = []
        self._after: List[_Registration] = []

    # Hooks ----------------------------------------------------------------

    def before(self, hook: Hook, only: Optional[Sequence[str]] = None) -> "CrudResource":
        self._before.append(_Registration(hook, only))
        return self

    def after(self, hook: Hook, only: Optional[Sequence[str]] = None) -> "CrudResource":
        self._after.append(_Registration(hook, only))
        return self

    def _run(self, registrations: List[_Registration], ctx: HookContext) -> None:
        for registration in registrations:
            if registration.applies_to(ctx.action):
                registration.hook(ctx)

    # Persistence helpers --------------------------------------------------

    def _get(self, db: Session, key: str):
        column = getattr(self.model, self.identifying_key)
        instance = db.execute(select(self.model).where(column == key)).scalars().first()
        if instance is None:
            raise NotFoundError(f"{self.model.__name__} {key} not found")
        return instance

    def _apply(self, instance, body: Dict[str, Any], *, skip_key: bool = False) -> None:
        for json_name, attribute in self.fields.items():
            if skip_key and attribute == self.identifying_key:
                continue
            if json_name in body:
                setattr(instance, attribute, body[json_name])

    def _commit(self, db: Session) -> None:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"[crud] integrity error on {self.model.__name__}: {e.orig}")
            raise ValidationError(f"{self.model.__name__} conflicts with an existing record")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[crud] save failed for {self.model.__name__}: {e}")
            raise PersistenceError(f"Could not save {self.model.__name__}")

    # Actions --------------------------------------------------------------

    def list(self, db: Session, request: Optional[Request] = None):
        ctx = HookContext(action="list", db=db, request=request)
        self._run(self._before, ctx)
        instances = db.execute(select(self.model)).scalars().all()
        ctx.result = [instance.to_dict() for instance in instances]
        self._run(self._after, ctx)
        return ctx.result

    def create(self, db: Session, body: Dict[str, Any], request: Optional[Request] = None):
        ctx = HookContext(action="create", db=db, request=request, body=dict(body))
        key_field = self._json_name(self.identifying_key)
        if not ctx.body.get(key_field):
            raise ValidationError(f"{key_field} is required")
        self._run(self._before, ctx)

        column = getattr(self.model, self.identifying_key)
        duplicate = db.execute(select(self.model).where(column == ctx.body[key_field])).scalars().first()
        if duplicate is not None:
            raise ValidationError(f"{self.model.__name__} {ctx.body[key_field]} already exists")

        instance = self.model()
        self._apply(instance, ctx.body)
        db.add(instance)
        self._commit(db)
        db.refresh(instance)

        ctx.instance = instance
        ctx.key = getattr(instance, self.identifying_key)
        ctx.result = instance.to_dict()
        self._run(self._after, ctx)
        return ctx.result

    def read(self, db: Session, key: str, request: Optional[Request] = None):
        ctx = HookContext(action="read", db=db, request=request, key=key)
        self._run(self._before, ctx)
        ctx.instance = self._get(db, key)
        ctx.result = ctx.instance.to_dict()
        self._run(self._after, ctx)
        return ctx.result

    def update(self, db: Session, key: str, body: Dict[str, Any], request: Optional[Request] = None):
        ctx = HookContext(action="update", db=db, request=request, key=key, body=dict(body))
        ctx.instance = self._get(db, key)
        self._run(self._before, ctx)
        self._apply(ctx.instance, ctx.body, skip_key=True)
        self._commit(db)
        db.refresh(ctx.instance)
        ctx.result = ctx.instance.to_dict()
        self._run(self._after, ctx)
        return ctx.result

    def delete(self, db: Session, key: str, request: Optional[Request] = None):
        ctx = HookContext(action="delete", db=db, request=request, key=key)
        ctx.instance = self._get(db, key)
        self._run(self._before, ctx)
        ctx.result = ctx.instance.to_dict()
        db.delete(ctx.instance)
        self._commit(db)
        self._run(self._after, ctx)
        return ctx.result

    def _json_name(self, attribute: str) -> str:
        for json_name, attr in self.fields.items():
            if attr == attribute:
                return json_name
        return attribute

    # Router ---------------------------------------------------------------

    def build_router(self, dependencies: Optional[Sequence[Any]] = None) -> APIRouter:
        router = APIRouter(prefix=self.prefix, tags=self.tags, dependencies=list(dependencies or []))
        resource = self

        if "list" in self.actions:
            @router.get("")
            def list_items(request: Request, db: Session = Depends(get_db)):
                return resource.list(db, request)

        if "create" in self.actions:
            @router.post("", status_code=201)
            def create_item(request: Request, body: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
                return resource.create(db, body, request)

        if "read" in self.actions:
            @router.get("/{key}")
            def read_item(key: str, request: Request, db: Session = Depends(get_db)):
                return resource.read(db, key, request)

        if "update" in self.actions:
            @router.put("/{key}")
            def update_item(key: str, request: Request, body: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
                return resource.update(db, key, body, request)

        if "delete" in self.actions:
            @router.delete("/{key}")
            def delete_item(key: str, request: Request, db: Session = Depends(get_db)):
                return resource.delete(db, key, request)

        return router
