from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, conint


class RecipeStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: conint(ge=1)
    step: str


class Ingredient(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    original: Optional[str] = None

    @property
    def display(self) -> str:
        return self.original or self.name


class Recipe(BaseModel):
    title: str
    steps: List[RecipeStep]
    ingredients: List[Ingredient] = []
    ready_in_minutes: Optional[int] = None
    servings: Optional[int] = None
    vegetarian: bool = False
    vegan: bool = False
    gluten_free: bool = False
    dairy_free: bool = False

    @property
    def dietary(self) -> List[str]:
        flags = [
            ("Vegetarian", self.vegetarian),
            ("Vegan", self.vegan),
            ("Gluten-Free", self.gluten_free),
            ("Dairy-Free", self.dairy_free),
        ]
        return [label for label, on in flags if on]
