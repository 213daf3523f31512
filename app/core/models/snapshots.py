"""
Immutable historical copies.

Every snapshot is copied field by field from the live document and is frozen
once built. New fields on the live models are not historical until they are
listed here explicitly.
"""
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from app.core.models.catalog import Meal, MealIngredient
from app.core.models.common import PyObjectId
from app.core.models.weekly_menu import WeeklyMenuTemplate


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class IngredientLineSnapshot(_Frozen):
    ingredient_id: PyObjectId
    title: str
    unit: str
    current_amount: float
    calories: float = 0
    protein: float = 0
    fat: float = 0
    carbs: float = 0

    @classmethod
    def from_line(cls, line: MealIngredient) -> "IngredientLineSnapshot":
        return cls(
            ingredient_id=line.ingredient_id,
            title=line.title,
            unit=line.unit,
            current_amount=line.current_amount,
            calories=line.calories,
            protein=line.protein,
            fat=line.fat,
            carbs=line.carbs,
        )


class NutritionSnapshot(_Frozen):
    calories: float = 0
    protein: float = 0
    fat: float = 0
    carbs: float = 0


class MealSnapshot(_Frozen):
    meal_id: PyObjectId
    title: str
    description: Optional[str] = None
    image: Optional[str] = None
    category: str
    ingredients: Tuple[IngredientLineSnapshot, ...] = ()
    nutrition: NutritionSnapshot = NutritionSnapshot()

    @classmethod
    def from_meal(cls, meal: Meal) -> "MealSnapshot":
        return cls(
            meal_id=str(meal.id),
            title=meal.title,
            description=meal.description,
            image=meal.image,
            category=meal.category,
            ingredients=tuple(IngredientLineSnapshot.from_line(i) for i in meal.ingredients),
            nutrition=NutritionSnapshot(
                calories=meal.nutrition.calories,
                protein=meal.nutrition.protein,
                fat=meal.nutrition.fat,
                carbs=meal.nutrition.carbs,
            ),
        )


class MenuDayMealSnapshot(_Frozen):
    category: str
    meal_id: PyObjectId
    time: Optional[str] = None


class MenuDaySnapshot(_Frozen):
    day: int
    meals: Tuple[MenuDayMealSnapshot, ...] = ()


class MenuSnapshot(_Frozen):
    menu_id: PyObjectId
    title: str
    description: Optional[str] = None
    preferences: Tuple[str, ...] = ()
    restrictions: Tuple[str, ...] = ()
    days: Tuple[MenuDaySnapshot, ...] = ()

    @classmethod
    def from_template(cls, template: WeeklyMenuTemplate) -> "MenuSnapshot":
        return cls(
            menu_id=str(template.id),
            title=template.title,
            description=template.description,
            preferences=tuple(template.preferences),
            restrictions=tuple(template.restrictions),
            days=tuple(
                MenuDaySnapshot(
                    day=d.day,
                    meals=tuple(
                        MenuDayMealSnapshot(category=m.category, meal_id=m.meal_id, time=m.time)
                        for m in d.meals
                    ),
                )
                for d in template.days
            ),
        )

    def summary(self) -> dict:
        return {
            "id": self.menu_id,
            "title": self.title,
            "description": self.description,
            "preferences": list(self.preferences),
            "restrictions": list(self.restrictions),
        }

