"""Reference catalog entries used to reconcile extracted names."""

from typing import Optional
from uuid import UUID, uuid4

from pydantic import Field

from .base import FrozenModel


class CatalogEntry(FrozenModel):
    """A known drug or biomarker with its canonical name."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, description="Canonical name")
    code: Optional[str] = Field(None, description="External code (LOINC, ATC, ...)")


class Drug(CatalogEntry):
    """Catalog entry for a medication."""

    rxcui: Optional[str] = Field(None, description="RxNorm concept identifier")
    active_ingredients: Optional[tuple[str, ...]] = None


class Biomarker(CatalogEntry):
    """Catalog entry for a lab test with its default reference range."""

    unit: Optional[str] = None
    ref_min: Optional[float] = None
    ref_max: Optional[float] = None

    @property
    def has_reference_range(self) -> bool:
        """Check if both bounds of the default range are known."""
        return self.ref_min is not None and self.ref_max is not None
