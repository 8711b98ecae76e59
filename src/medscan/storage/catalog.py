"""JSON-backed reference catalog of drugs and biomarkers.

The bundled ``medscan/data/catalog.json`` carries common biomarkers with
LOINC codes and adult reference ranges, plus a short list of common drugs.
Point ``MEDSCAN_CATALOG_PATH`` at a file with the same shape to use a
different catalog.

Entries without an explicit ``id`` get a stable UUID derived from their
name, so matched ids stay the same across loads.
"""

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Optional, Union
from uuid import NAMESPACE_URL, uuid5

from pydantic import ValidationError

from medscan.errors import ConfigurationError
from medscan.models import Biomarker, Drug

logger = logging.getLogger(__name__)


def stable_entry_id(kind: str, name: str):
    return uuid5(NAMESPACE_URL, f"medscan:{kind}:{name.strip().casefold()}")


def _load_bundled() -> dict[str, Any]:
    text = resources.files("medscan").joinpath("data/catalog.json").read_text(encoding="utf-8")
    return json.loads(text)


class JsonCatalog:
    """Read-only catalog loaded once from JSON."""

    def __init__(
        self,
        drugs: Optional[list[Drug]] = None,
        biomarkers: Optional[list[Biomarker]] = None,
    ):
        self._drugs = tuple(drugs or ())
        self._biomarkers = tuple(biomarkers or ())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonCatalog":
        try:
            drugs = [
                Drug(**{"id": stable_entry_id("drug", entry["name"]), **entry})
                for entry in data.get("drugs", [])
            ]
            biomarkers = [
                Biomarker(**{"id": stable_entry_id("biomarker", entry["name"]), **entry})
                for entry in data.get("biomarkers", [])
            ]
        except (KeyError, TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid catalog data: {e}") from e
        return cls(drugs=drugs, biomarkers=biomarkers)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "JsonCatalog":
        """Load a catalog file, or the bundled default when path is None.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        if path is None:
            data = _load_bundled()
        else:
            try:
                data = json.loads(Path(path).read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Could not load catalog from {path}: {e}") from e

        catalog = cls.from_dict(data)
        logger.info(
            "Loaded catalog with %d drugs and %d biomarkers",
            len(catalog.drugs()), len(catalog.biomarkers()),
        )
        return catalog

    def drugs(self) -> tuple[Drug, ...]:
        return self._drugs

    def biomarkers(self) -> tuple[Biomarker, ...]:
        return self._biomarkers
