from __future__ import annotations

from typing import Annotated

from pydantic import Field

from core.enums import Modification
from core.schemas import CamelModel


class GenerateWorkoutBody(CamelModel):
    body_parts: Annotated[list[str], Field(min_length=1)]
    user_id: str | None = None
    generate_images: bool = False


class RegenerateWorkoutBody(GenerateWorkoutBody):
    modifications: Annotated[list[Modification], Field(min_length=1)]


class PlanUpdateBody(CamelModel):
    rating: Annotated[int | None, Field(ge=1, le=5)] = None
    notes: str | None = None


class FavoriteBody(CamelModel):
    plan_id: str


class SessionBody(CamelModel):
    plan_id: str
    duration: Annotated[int | None, Field(ge=0)] = None
    calories_burned: Annotated[int | None, Field(ge=0)] = None
    rating: Annotated[int | None, Field(ge=1, le=5)] = None
    notes: str | None = None


class ServiceInfo(CamelModel):
    message: str
    endpoint: str
    rate_limit: str
