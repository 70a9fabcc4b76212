from sqlalchemy.orm import DeclarativeBase

from named_scopes.scope import ScopedMixin


class Base(ScopedMixin, DeclarativeBase):
    pass
