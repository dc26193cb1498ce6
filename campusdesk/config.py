"""
Application Configuration

Settings come from the environment (prefix ``CAMPUSDESK_``) and an
optional ``.env`` file.
"""
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

LOST_ITEM_CATEGORIES = [
    "Electronics",
    "Clothing",
    "Books",
    "Accessories",
    "Sports Equipment",
    "Personal Items",
    "Documents",
    "Keys",
    "Other",
]

LOCATIONS = [
    "Main Building",
    "Library",
    "Cafeteria",
    "Gymnasium",
    "Dormitory A",
    "Dormitory B",
    "Dormitory C",
    "Laundry Room",
    "Common Area",
    "Parking Lot",
    "Garden",
    "Other",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CAMPUSDESK_", extra="ignore")

    app_name: str = "Campus Desk"
    log_level: str = Field(default="INFO", description="Root logging level")
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    max_laundry_items: int = Field(default=50, ge=1, description="Upper bound on items in one request")
    lost_item_categories: List[str] = Field(
        default_factory=lambda: list(LOST_ITEM_CATEGORIES),
        description="Accepted lost item categories; empty accepts any",
    )
    lost_item_locations: List[str] = Field(
        default_factory=lambda: list(LOCATIONS),
        description="Accepted places where items are found; empty accepts any",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
