"""Normalize raw feed text into canonical meal fields."""

from schoolmeal.normalize.menu import clean_menu_item, split_menu_items
from schoolmeal.normalize.nutrition import NutrientEntry, normalize_nutrition, parse_nutrient_line
from schoolmeal.normalize.origin import normalize_origin

__all__ = [
    "NutrientEntry",
    "clean_menu_item",
    "normalize_nutrition",
    "normalize_origin",
    "parse_nutrient_line",
    "split_menu_items",
]
