from sqlalchemy import func
from sqlmodel import SQLModel, Session, select
from typing import TypeVar, Generic, Type, Optional, List

T = TypeVar('T', bound=SQLModel)


class BaseRepository(Generic[T]):
    """Repository bound to one session and one tenant.

    Every query filters on ``tenant_id``, so a row owned by another tenant is
    indistinguishable from a missing one.
    """

    def __init__(self, session: Session, tenant_id: str, model_class: Type[T]):
        self.session = session
        self.tenant_id = tenant_id
        self.model_class = model_class

    def scoped_select(self):
        return select(self.model_class).where(self.model_class.tenant_id == self.tenant_id)

    def get_by_id(self, id: str) -> Optional[T]:
        if not id:
            return None
        return self.session.exec(self.scoped_select().where(self.model_class.id == id)).first()

    def exists(self, id: str) -> bool:
        if not id:
            return False
        statement = select(self.model_class.id).where(
            self.model_class.tenant_id == self.tenant_id,
            self.model_class.id == id,
        )
        return self.session.exec(statement).first() is not None

    def get_all(self) -> List[T]:
        return list(self.session.exec(self.scoped_select()).all())

    def count(self) -> int:
        statement = select(func.count()).select_from(self.model_class).where(
            self.model_class.tenant_id == self.tenant_id
        )
        return self.session.exec(statement).one()

    def create(self, model: T) -> T:
        model.tenant_id = self.tenant_id
        self.session.add(model)
        self.session.flush()
        return model

