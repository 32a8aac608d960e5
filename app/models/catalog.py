# app/models/catalog.py
from sqlmodel import SQLModel, Field


class Service(SQLModel, table=True):
    """
    Service category an advertisement is published under
    (e.g. "Dog walking", "Grooming").
    """

    __tablename__ = "services"

    id: int | None = Field(default=None, primary_key=True)

    name: str = Field(max_length=100, unique=True, index=True)


class Species(SQLModel, table=True):
    """
    Animal species an advertisement can be tagged with.
    """

    __tablename__ = "species"

    id: int | None = Field(default=None, primary_key=True)

    name: str = Field(max_length=100, unique=True, index=True)
