from .models import LintWarning, ParseFailure, ParseResult, Unit
from .metadata import parse_unit_file, parse_unit_metadata
from .registry import Catalog, CatalogRegistry

__all__ = [
    "Catalog",
    "CatalogRegistry",
    "LintWarning",
    "ParseFailure",
    "ParseResult",
    "Unit",
    "parse_unit_file",
    "parse_unit_metadata",
]
