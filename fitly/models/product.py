from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _unique_non_empty(values: List[str]) -> List[str]:
    # Ordre de première apparition, comparaison sensible à la casse
    seen = set()
    result = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


class Variant(BaseModel):
    """Une combinaison taille/couleur achetable."""

    model_config = ConfigDict(populate_by_name=True)

    external_id: str = Field(default="", alias="asin")
    size: str = ""
    color: str = ""
    images: List[str] = Field(default_factory=list, alias="image_paths")

    @field_validator("images")
    @classmethod
    def _dedupe_images(cls, v: List[str]) -> List[str]:
        return _unique_non_empty(v)


class Product(BaseModel):
    """Résultat canonique d'un scraping produit."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""

    # Prix gardés en chaînes d'affichage (symbole et format du site)
    mrp: str = ""
    discounted_price: str = ""
    discount_percent: str = Field(default="", alias="discount")

    description: str = ""
    category: str = ""
    subcategory: str = ""
    dimensions: str = ""
    material: str = ""
    fit_type: str = ""

    images: List[str] = Field(default_factory=list, alias="image_paths")
    variants: List[Variant] = Field(default_factory=list)
    current_selection: Optional[Variant] = None

    @field_validator("images")
    @classmethod
    def _dedupe_images(cls, v: List[str]) -> List[str]:
        return _unique_non_empty(v)

    @field_validator("variants")
    @classmethod
    def _unique_variants(cls, v: List[Variant]) -> List[Variant]:
        seen = set()
        result = []
        for variant in v:
            if variant.external_id in seen:
                continue
            seen.add(variant.external_id)
            result.append(variant)
        return result

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(by_alias=True, **kwargs)
