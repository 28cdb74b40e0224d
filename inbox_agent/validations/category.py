"""
Validation and persistence of user-defined categories.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database.models import Category

COLOR_PATTERN = r'^#[0-9A-Fa-f]{6}$'
DEFAULT_COLOR = '#6366f1'


class CategoryInput(BaseModel):
    """A new category."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    color: str = Field(default=DEFAULT_COLOR, pattern=COLOR_PATTERN)

    @field_validator('description')
    @classmethod
    def empty_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class CategoryUpdate(BaseModel):
    """A partial category update; unset fields are left alone."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


def format_validation_error(error: ValidationError) -> str:
    """Flatten pydantic errors into ``field: message`` pairs."""
    parts = []
    for item in error.errors():
        location = '.'.join(str(p) for p in item.get('loc', ())) or 'input'
        parts.append(f"{location}: {item.get('msg')}")
    return '; '.join(parts)


class CategoryService:
    """Create, update and list categories; validation happens before any write."""

    def __init__(self, session: Session):
        self.session = session

    def list(self) -> List[Category]:
        return self.session.query(Category).order_by(Category.name).all()

    def create(self, name: str, description: Optional[str] = None,
               color: Optional[str] = None) -> Category:
        payload = {'name': name, 'description': description}
        if color is not None:
            payload['color'] = color
        data = CategoryInput(**payload)

        category = Category(name=data.name, description=data.description, color=data.color)
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ValueError(f"Category '{data.name}' already exists")
        return category

    def update(self, category_id: int, **changes) -> Category:
        data = CategoryUpdate(**changes)
        category = self.session.get(Category, category_id)
        if category is None:
            raise LookupError(f"Category {category_id} not found")

        for key, value in data.model_dump(exclude_unset=True).items():
            if key == 'description':
                category.description = value or None
            elif value is not None:
                setattr(category, key, value)

        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ValueError(f"Category name '{data.name}' already exists")
        return category
