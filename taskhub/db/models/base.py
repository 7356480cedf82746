# File: taskhub/db/models/base.py
"""
Base models and mixins for TaskHub.

This module provides the foundation for all database models in the system:
- Base SQLAlchemy model class
- Common mixins for shared functionality (timestamps, validation)
"""

from typing import Any, Set, ClassVar
import uuid

from sqlalchemy import Column, Integer, String, DateTime, MetaData
from sqlalchemy.orm import declarative_base

from taskhub.core.utils import utcnow

# Create the SQLAlchemy base
Base = declarative_base(metadata=MetaData())


class ModelValidationError(ValueError):
    """
    Exception raised for model validation errors.

    Attributes:
        model: The model instance that failed validation
        field: The field that failed validation
        message: Explanation of the error
    """

    def __init__(self, model: Any, field: str, message: str):
        self.model = model
        self.field = field
        self.message = message
        super().__init__(
            f"Validation error in {model.__class__.__name__}.{field}: {message}"
        )


class ValidationMixin:
    """
    Mixin providing whole-record validation.

    Models list the fields to check in ``__validated_fields__`` and implement
    ``validate_<field>(key, value)`` for each of them.
    """

    __validated_fields__: ClassVar[Set[str]] = set()

    def validate(self) -> None:
        """
        Validate all listed fields in the model.

        Raises:
            ModelValidationError: If validation fails for any field
        """
        for field in self.__validated_fields__:
            if hasattr(self, f"validate_{field}"):
                value = getattr(self, field)
                validator = getattr(self, f"validate_{field}")
                validator(field, value)


class TimestampMixin:
    """
    Mixin providing automatic timestamp functionality.

    Adds created_at and updated_at timestamps (naive UTC) that are maintained
    when records are created or updated.
    """

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AbstractBase(Base):
    """
    Abstract base class for all model entities.

    Attributes:
        id: Primary key ID (auto-incremented)
        uuid: Unique identifier (UUID) for the record
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, default=lambda: str(uuid.uuid4()))
