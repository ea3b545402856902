"""Models package with all models."""
from .base import BaseModel
from .subject import Subject
from .attendance import AttendanceRecord

__all__ = ['BaseModel', 'Subject', 'AttendanceRecord']
