"""Subject (class) model."""
from rollcall import db
from rollcall.models.base import BaseModel


class Subject(BaseModel):
    """A class that attendance sessions can be opened for."""

    __tablename__ = 'subjects'

    code = db.Column(db.String(128), unique=True, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    @classmethod
    def exists(cls, code: str) -> bool:
        """Check that an active subject with this code exists."""
        return cls.query.filter_by(code=code, is_active=True).first() is not None

    def __repr__(self):
        return f'<Subject {self.code}>'
