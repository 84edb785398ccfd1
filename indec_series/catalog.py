"""Expected names found in INDEC publications.

Every table is an immutable tuple of ``NamePattern`` so callers (and tests)
can pass their own lists to the locator and extractor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from indec_series.matching import NamePattern, patterns_from_names

# IPC ----------------------------------------------------------------------

IPC_REGIONS: Tuple[NamePattern, ...] = (
    NamePattern("Nacional", "NACIONAL", "region", aliases=("Total nacional",)),
    NamePattern("GBA", "GBA", "region", aliases=("Región GBA", "Region GBA")),
    NamePattern("Pampeana", "PAMPEANA", "region", aliases=("Región Pampeana",)),
    NamePattern("Noroeste", "NOROESTE", "region", aliases=("Región Noroeste",)),
    NamePattern("Noreste", "NORESTE", "region", aliases=("Región Noreste",)),
    NamePattern("Cuyo", "CUYO", "region", aliases=("Región Cuyo",)),
    NamePattern("Patagonia", "PATAGONIA", "region", aliases=("Región Patagonia",)),
)

IPC_GENERAL: Tuple[NamePattern, ...] = (
    NamePattern("Nivel general", "GENERAL", "GENERAL", exact=True),
)

IPC_RUBROS: Tuple[NamePattern, ...] = patterns_from_names(
    (
        "Alimentos y bebidas no alcohólicas",
        "Bebidas alcohólicas y tabaco",
        "Prendas de vestir y calzado",
        "Vivienda, agua, electricidad, gas y otros combustibles",
        "Equipamiento y mantenimiento del hogar",
        "Salud",
        "Transporte",
        "Comunicación",
        "Recreación y cultura",
        "Educación",
        "Restaurantes y hoteles",
        "Bienes y servicios varios",
    ),
    category="RUBRO",
    prefix="RUBRO_",
)

IPC_CATEGORIAS: Tuple[NamePattern, ...] = patterns_from_names(
    ("Estacional", "Núcleo", "Regulados"),
    category="CATEGORIA",
    prefix="CAT_",
)

IPC_BYS: Tuple[NamePattern, ...] = (
    NamePattern("Bienes", "BYS_BIENES", "BYS", exact=True),
    NamePattern("Servicios", "BYS_SERVICIOS", "BYS", exact=True),
)

IPC_CATEGORIAS_HEADER: Tuple[NamePattern, ...] = (
    NamePattern("Categorías", "CATEGORIAS", "header", exact=True),
)
IPC_BYS_HEADER: Tuple[NamePattern, ...] = (
    NamePattern("Bienes y servicios", "BYS", "header", exact=True),
)

# Labor market (EPH) --------------------------------------------------------

LABOR_REGIONS: Tuple[NamePattern, ...] = (
    NamePattern("Total 31 aglomerados", "TOTAL_31", "region", aliases=("Total 31 aglomerados", "Total aglomerados")),
    NamePattern("GBA", "GBA", "region", aliases=("Gran Buenos Aires", "GBA", "Partidos del GBA")),
    NamePattern("Interior", "INTERIOR", "region", aliases=("Interior", "Total interior")),
    NamePattern("Región Pampeana", "PAMPEANA", "region", aliases=("Región Pampeana", "Pampeana")),
    NamePattern("Región Noroeste", "NOA", "region", aliases=("Región Noroeste", "Noroeste", "NOA")),
    NamePattern("Región Noreste", "NEA", "region", aliases=("Región Noreste", "Noreste", "NEA")),
    NamePattern("Región Cuyo", "CUYO", "region", aliases=("Región Cuyo", "Cuyo")),
    NamePattern("Región Patagónica", "PATAGONIA", "region", aliases=("Región Patagónica", "Patagónica", "Patagonia")),
)

LABOR_INDICATORS: Tuple[NamePattern, ...] = (
    NamePattern("Tasa de actividad", "activity_rate", "field"),
    NamePattern("Tasa de empleo", "employment_rate", "field"),
    NamePattern("Tasa de desocupación", "unemployment_rate", "field", aliases=("Tasa de desocupación", "Tasa de desempleo")),
    NamePattern("Población total", "total_population", "field"),
    NamePattern("Población económicamente activa", "economically_active_population", "field", aliases=("Población económicamente activa", "PEA")),
    NamePattern("Población ocupada", "employed_population", "field", aliases=("Población ocupada", "Ocupados")),
    NamePattern("Población desocupada", "unemployed_population", "field", aliases=("Población desocupada", "Desocupados")),
    NamePattern("Población inactiva", "inactive_population", "field", aliases=("Población inactiva", "Inactivos")),
)

LABOR_AGE_GROUPS: Tuple[NamePattern, ...] = (
    NamePattern("14-29", "14_29", "age_group", aliases=("14 a 29", "14-29")),
    NamePattern("30-64", "30_64", "age_group", aliases=("30 a 64", "30-64")),
    NamePattern("65+", "65", "age_group", aliases=("65 y mas", "65 años y más", "65+")),
)

LABOR_GENDERS: Tuple[NamePattern, ...] = (
    NamePattern("Varones", "VARONES", "gender", aliases=("varones", "hombres")),
    NamePattern("Mujeres", "MUJERES", "gender", aliases=("mujeres",)),
)

# Poverty -------------------------------------------------------------------

POVERTY_REGIONS: Tuple[NamePattern, ...] = (
    NamePattern("Gran Buenos Aires", "GBA", "region", aliases=("Gran Buenos Aires", "GBA")),
    NamePattern("Cuyo", "CUYO", "region"),
    NamePattern("Noreste", "NEA", "region"),
    NamePattern("Noroeste", "NOA", "region"),
    NamePattern("Pampeana", "PAMPEANA", "region"),
    NamePattern("Patagonia", "PATAGONIA", "region"),
)

POVERTY_SECTION_HEADER: Tuple[NamePattern, ...] = (
    NamePattern("Pobreza", "poverty", "header", aliases=("pobreza", "personas bajo la linea de pobreza")),
)
INDIGENCE_SECTION_HEADER: Tuple[NamePattern, ...] = (
    NamePattern("Indigencia", "indigence", "header", aliases=("indigencia", "personas bajo la linea de indigencia")),
)
POVERTY_UNITS: Tuple[NamePattern, ...] = (
    NamePattern("Hogares", "households", "field"),
    NamePattern("Personas", "persons", "field"),
)
POVERTY_GAP_SEVERITY: Tuple[NamePattern, ...] = (
    NamePattern("Brecha", "gap", "field", aliases=("brecha",)),
    NamePattern("Severidad", "severity", "field", aliases=("severidad",)),
)

# EMAE ----------------------------------------------------------------------

EMAE_COLUMNS: Tuple[NamePattern, ...] = (
    NamePattern("Serie original", "original_value", "column", aliases=("original",)),
    NamePattern("Serie desestacionalizada", "seasonally_adjusted_value", "column", aliases=("desestacionalizada",)),
    NamePattern("Serie tendencia-ciclo", "cycle_trend_value", "column", aliases=("tendencia",)),
)


def _patterns_from_config(items: Any, category: str) -> Tuple[NamePattern, ...]:
    patterns = []
    for item in items or []:
        if isinstance(item, str):
            patterns.extend(patterns_from_names((item,), category=category))
            continue
        patterns.append(
            NamePattern(
                name=str(item["name"]),
                code=str(item.get("code") or item["name"]),
                category=category,
                aliases=tuple(item.get("aliases") or ()),
                exact=bool(item.get("exact", False)),
            )
        )
    return tuple(patterns)


@dataclass(frozen=True)
class Catalog:
    """Lookup tables handed to fetchers; overridable per indicator from config."""

    ipc_regions: Tuple[NamePattern, ...] = IPC_REGIONS
    ipc_rubros: Tuple[NamePattern, ...] = IPC_RUBROS
    ipc_categorias: Tuple[NamePattern, ...] = IPC_CATEGORIAS
    ipc_bys: Tuple[NamePattern, ...] = IPC_BYS
    labor_regions: Tuple[NamePattern, ...] = LABOR_REGIONS
    labor_indicators: Tuple[NamePattern, ...] = LABOR_INDICATORS
    poverty_regions: Tuple[NamePattern, ...] = POVERTY_REGIONS

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Catalog":
        """Defaults, with ``catalog.<table>`` lists from config replacing a table."""
        overrides = config.get("catalog", {}) or {}
        kwargs = {}
        categories = {
            "ipc_regions": "region",
            "ipc_rubros": "RUBRO",
            "ipc_categorias": "CATEGORIA",
            "ipc_bys": "BYS",
            "labor_regions": "region",
            "labor_indicators": "field",
            "poverty_regions": "region",
        }
        for key, category in categories.items():
            if key in overrides:
                kwargs[key] = _patterns_from_config(overrides[key], category)
        return cls(**kwargs)
