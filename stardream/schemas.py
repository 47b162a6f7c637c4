"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field

from .models import Gender


class StartBody(BaseModel):
    gender: Gender = "unspecified"
    name: str = ""


class CharacterBody(BaseModel):
    id: str | None = None


class SceneBody(BaseModel):
    id: str


class TabBody(BaseModel):
    tab: str


class MessageBody(BaseModel):
    text: str = Field(min_length=1)
