from dataclasses import dataclass, field
from enum import Enum

from dataclasses_json import LetterCase, dataclass_json
from pydantic import BaseModel, ConfigDict, Field


class Category(str, Enum):
    WINE = "Wine"
    CHEESE = "Cheese"
    MEAT = "Meat"
    VEGETABLE = "Vegetable"
    HONEY = "Honey"
    OIL = "Oil"


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class Product:
    name: str
    category: Category


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class Owner:
    name: str
    role: str
    photo_url: str


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class FarmRecord:
    id: str
    name: str
    address: str
    description: str
    logo: str
    specialty: str  # matched against the user request by the concierge
    lat: float
    lng: float
    products: list[Product] = field(default_factory=list)
    owners: list[Owner] = field(default_factory=list)
    connections: list[str] = field(default_factory=list)

    def categories(self) -> set[Category]:
        """Distinct product categories sold by this farm."""
        return {p.category for p in self.products}

    def product_names(self) -> str:
        """Product names flattened into one comma separated string."""
        return ", ".join(p.name for p in self.products)

    def coordinates(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class ItineraryStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    farm_id: str = Field(alias="farmId")
    reason: str


class Itinerary(BaseModel):
    title: str
    description: str
    steps: list[ItineraryStep]

    def farm_ids(self) -> list[str]:
        """Step farm ids in visiting order."""
        return [s.farm_id for s in self.steps]
