"""
normalize.py - Data normalization and record reconciliation.

Core normalizers:
    normalize_text(text)          -> lowercase, separator-free text
    normalize_amount(value)       -> dollars as float, or None
    normalize_percent(value)      -> 0-100 float, or None
    normalize_bool(value)         -> True / False / None
    normalize_program(value)      -> ProgramType | None
    normalize_allocation_type(v)  -> AllocationType | None
    normalize_list(value)         -> tuple of trimmed strings

Record builders:
    reconcile_deal(*sources)      -> one canonical Deal
    normalize_provider(record)    -> Provider

Design principles:
    - SAME normalization on BOTH sides of every comparison
    - Pure transformations, no external calls
    - Invalid input degrades to None (logged), never raises; only a record
      without an id is rejected
"""

from __future__ import annotations

import math
import re
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from logging_config import get_logger
from models import AllocationType, ComplianceInputs, Deal, DealStatus, ProgramType, Provider, ProviderKind

logger = get_logger(__name__)

_SEPARATORS = re.compile(r"[_\-]")
_WHITESPACE = re.compile(r"\s+")
_LIST_SPLIT = re.compile(r"[;,]")

_TRUE_TEXT = {"true", "yes", "y", "1", "t"}
_FALSE_TEXT = {"false", "no", "n", "0", "f"}
_EMPTY_TEXT = {"n/a", "na", "none", "null", "unknown"}

PROGRAM_ALIASES: dict[str, ProgramType] = {
    "nmtc": ProgramType.NMTC,
    "new markets": ProgramType.NMTC,
    "new markets tax credit": ProgramType.NMTC,
    # the state/federal split is kept in allocation_type
    "state nmtc": ProgramType.NMTC,
    "htc": ProgramType.HTC,
    "historic": ProgramType.HTC,
    "historic tax credit": ProgramType.HTC,
    "lihtc": ProgramType.LIHTC,
    "low income housing tax credit": ProgramType.LIHTC,
    "oz": ProgramType.OZ,
    "opportunity zone": ProgramType.OZ,
    "opportunity zones": ProgramType.OZ,
    "brownfield": ProgramType.BROWNFIELD,
    "brownfields": ProgramType.BROWNFIELD,
}


def _as_text(value: Any) -> str:
    # str() of a str-mixin Enum member is "Class.MEMBER" on 3.11+
    if isinstance(value, Enum):
        return str(value.value)
    return value if isinstance(value, str) else str(value)


def normalize_text(text: Any) -> str:
    """Normalize free text for comparison.

    "real_estate", "real-estate" and "  Real   Estate " all become
    "real estate". None and "" become "". Enum members use their value.
    """
    if text is None:
        return ""
    text = _as_text(text)
    if not text:
        return ""

    value = _SEPARATORS.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", value).strip()


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return not value.strip() or value.strip().lower() in _EMPTY_TEXT
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def normalize_amount(value: Any) -> Optional[float]:
    """Normalize a dollar amount. Missing, negative or unparseable -> None."""
    if _is_empty(value) or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        cleaned = (
            str(value)
            .strip()
            .replace("$", "")
            .replace(",", "")
            .replace(" ", "")
        )
        multiplier = 1.0
        if cleaned[-1:].upper() == "M":
            multiplier, cleaned = 1_000_000.0, cleaned[:-1]
        elif cleaned[-1:].upper() == "K":
            multiplier, cleaned = 1_000.0, cleaned[:-1]
        try:
            amount = float(cleaned) * multiplier
        except ValueError:
            logger.warning("normalize_amount | parse_failed | raw=%r | fallback=None", value)
            return None

    if not math.isfinite(amount):
        logger.warning("normalize_amount | non_finite=%r | fallback=None", value)
        return None
    if amount < 0:
        logger.warning("normalize_amount | negative=%r | fallback=None", value)
        return None
    return round(amount, 2)


def normalize_percent(value: Any) -> Optional[float]:
    """Normalize a 0-100 percentage ("35%", 35, "35.5"). Out of range -> None."""
    if _is_empty(value) or isinstance(value, bool):
        return None

    text = str(value).strip().rstrip("%").strip()
    try:
        pct = float(text)
    except ValueError:
        logger.warning("normalize_percent | parse_failed | raw=%r | fallback=None", value)
        return None

    if not math.isfinite(pct) or pct < 0 or pct > 100:
        logger.warning("normalize_percent | out_of_range=%r | fallback=None", value)
        return None
    return round(pct, 2)


def normalize_ratio(value: Any) -> Optional[float]:
    """Non-negative percentage that may exceed 100 (e.g. % of area median income)."""
    if _is_empty(value) or isinstance(value, bool):
        return None
    amount = normalize_amount(str(value).strip().rstrip("%"))
    return amount


def normalize_bool(value: Any) -> Optional[bool]:
    """Normalize yes/no style flags. Anything unrecognized -> None."""
    if isinstance(value, bool):
        return value
    if _is_empty(value):
        return None
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)

    text = normalize_text(value)
    if text in _TRUE_TEXT:
        return True
    if text in _FALSE_TEXT:
        return False
    logger.debug("normalize_bool | unrecognized=%r | fallback=None", value)
    return None


def normalize_int(value: Any) -> Optional[int]:
    """Normalize a non-negative whole number (job counts, years)."""
    amount = normalize_amount(value)
    if amount is None:
        return None
    return int(amount)


def normalize_program(value: Any) -> Optional[ProgramType]:
    """Map a program name or code to ProgramType."""
    if isinstance(value, ProgramType):
        return value
    text = normalize_text(value)
    if not text:
        return None

    program = PROGRAM_ALIASES.get(text)
    if program is None:
        program = PROGRAM_ALIASES.get(text.replace(" ", ""))
    if program is None:
        logger.warning("normalize_program | unknown=%r | fallback=None", value)
    return program


def normalize_allocation_type(value: Any) -> Optional[AllocationType]:
    """Federal or state allocation from an explicit field or a program label.

    "State NMTC" gives STATE and "federal" gives FEDERAL. A plain program
    name such as "NMTC" says nothing about the source and gives None.
    """
    if isinstance(value, AllocationType):
        return value
    text = normalize_text(value)
    if not text:
        return None
    first = text.split()[0]
    if first == "state":
        return AllocationType.STATE
    if first in ("federal", "fed"):
        return AllocationType.FEDERAL
    return None


def normalize_status(value: Any) -> Optional[DealStatus]:
    """Map a lifecycle status string to DealStatus."""
    if isinstance(value, DealStatus):
        return value
    text = normalize_text(value).replace(" ", "_")
    if not text:
        return None
    try:
        return DealStatus(text)
    except ValueError:
        logger.warning("normalize_status | unknown=%r | fallback=None", value)
        return None


def normalize_list(value: Any) -> tuple[str, ...]:
    """Split lists or comma/semicolon separated text into trimmed items."""
    if _is_empty(value):
        return ()
    if isinstance(value, str):
        items = _LIST_SPLIT.split(value)
    elif isinstance(value, (list, tuple, set)):
        items = [_as_text(item) for item in value if not _is_empty(item)]
    else:
        items = [_as_text(value)]
    return tuple(item.strip() for item in items if item.strip())


def normalize_programs(value: Any) -> tuple[ProgramType, ...]:
    programs: list[ProgramType] = []
    for item in normalize_list(value):
        program = normalize_program(item)
        if program is not None and program not in programs:
            programs.append(program)
    return tuple(programs)


def _clean_text(value: Any) -> Optional[str]:
    if _is_empty(value):
        return None
    return _as_text(value).strip()


def _compliance_share(value: Any) -> Optional[bool | float]:
    if isinstance(value, bool):
        return value
    flag = normalize_bool(value) if isinstance(value, str) and not any(ch.isdigit() for ch in value) else None
    if flag is not None:
        return flag
    return normalize_percent(value)


Parser = Callable[[Any], Any]

DEAL_FIELDS: dict[str, tuple[tuple[str, ...], Parser]] = {
    "id": (("id", "deal_id"), _clean_text),
    "name": (("name", "project_name"), _clean_text),
    "program": (("program", "program_type", "credit_type"), normalize_program),
    "allocation_type": (
        ("allocation_type", "allocation_source", "program", "program_type", "credit_type"),
        normalize_allocation_type,
    ),
    "status": (("status", "deal_status"), normalize_status),
    "state": (("state", "project_state"), _clean_text),
    "city": (("city",), _clean_text),
    "address": (("address", "street_address"), _clean_text),
    "census_tract": (("census_tract", "tract_id", "census_tract_number"), _clean_text),
    "requested_amount": (
        ("requested_amount", "allocation_request", "nmtc_financing_requested", "amount_requested"),
        normalize_amount,
    ),
    "total_cost": (("total_cost", "total_project_cost"), normalize_amount),
    "financing_gap": (("financing_gap",), normalize_amount),
    "sector": (("sector", "project_type", "sector_category"), _clean_text),
    "description": (("description", "project_description", "community_impact"), _clean_text),
    "is_rural": (("is_rural", "tract_rural"), normalize_bool),
    "is_real_estate": (("is_real_estate", "real_estate"), normalize_bool),
    "is_owner_occupied": (("is_owner_occupied", "owner_occupied"), normalize_bool),
    "is_nonprofit": (("is_nonprofit", "nonprofit"), normalize_bool),
    "is_minority_owned": (("is_minority_owned", "minority_owned"), normalize_bool),
    "severely_distressed": (("severely_distressed", "tract_severely_distressed"), normalize_bool),
    "shovel_ready": (("shovel_ready",), normalize_bool),
    "poverty_rate": (("poverty_rate", "tract_poverty_rate"), normalize_percent),
    "median_income_pct": (("median_income_pct", "tract_median_income", "mfi_percent"), normalize_ratio),
    "unemployment_rate": (("unemployment_rate", "tract_unemployment"), normalize_percent),
    "distress_percentile": (("distress_percentile", "distress_score"), normalize_percent),
    "jobs_created": (("jobs_created", "permanent_jobs_fte", "jobs"), normalize_int),
}

COMPLIANCE_FIELDS: dict[str, tuple[tuple[str, ...], Parser]] = {
    "gross_income": (("gross_income", "gross_income_test", "gross_income_pct"), _compliance_share),
    "tangible_property": (
        ("tangible_property", "tangible_property_test", "tangible_property_pct"),
        _compliance_share,
    ),
    "services": (("services", "services_test", "services_pct"), _compliance_share),
    "collectibles_test": (("collectibles_test", "no_collectibles"), normalize_bool),
    "financial_property_test": (("financial_property_test", "no_financial_property"), normalize_bool),
    "active_business": (("active_business",), normalize_bool),
    "prohibited_business": (("prohibited_business",), normalize_bool),
    "business_type": (("business_type",), _clean_text),
}

PROVIDER_FIELDS: dict[str, tuple[tuple[str, ...], Parser]] = {
    "id": (("id", "provider_id", "cde_id", "investor_id"), _clean_text),
    "name": (("name", "organization_name", "cde_name"), _clean_text),
    "organization_id": (("organization_id", "org_id"), _clean_text),
    "allocation_year": (("allocation_year", "year"), normalize_int),
    "service_area_type": (("service_area_type", "service_area"), _clean_text),
    "geographic_focus": (("geographic_focus", "primary_states", "states"), normalize_list),
    "predominant_market": (("predominant_market", "market"), _clean_text),
    "sector_focus": (("sector_focus", "target_sectors", "sectors"), normalize_list),
    "program_focus": (("program_focus", "programs", "credit_types"), normalize_programs),
    "financing_focus": (("financing_focus", "predominant_financing"), _clean_text),
    "allocation_type": (("allocation_type", "allocation_source"), normalize_allocation_type),
    "rural_focus": (("rural_focus",), normalize_bool),
    "urban_focus": (("urban_focus",), normalize_bool),
    "remaining_allocation": (("remaining_allocation", "amount_remaining"), normalize_amount),
    "available_capital": (("available_capital", "capital_available"), normalize_amount),
    "min_investment": (("min_investment", "min_deal_size"), normalize_amount),
    "max_investment": (("max_investment", "max_deal_size"), normalize_amount),
    "small_deal_fund": (("small_deal_fund",), normalize_bool),
    "min_distress_percentile": (("min_distress_percentile",), normalize_percent),
    "minority_focus": (("minority_focus",), normalize_bool),
    "accepts_for_profit": (("accepts_for_profit", "forprofit_accepted"), normalize_bool),
}


def _first_value(
    sources: list[Mapping[str, Any]],
    aliases: tuple[str, ...],
    parser: Parser,
) -> Any:
    """First parseable, non-empty value across sources (priority order)."""
    for source in sources:
        for alias in aliases:
            if alias not in source:
                continue
            parsed = parser(source[alias])
            if parsed is None or parsed == ():
                continue
            return parsed
    return None


def _collect(
    sources: list[Mapping[str, Any]],
    fields: dict[str, tuple[tuple[str, ...], Parser]],
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field, (aliases, parser) in fields.items():
        value = _first_value(sources, aliases, parser)
        if value is not None:
            values[field] = value
    return values


def reconcile_deal(*sources: Mapping[str, Any]) -> Deal:
    """Merge raw deal records into one canonical Deal.

    Sources are given in priority order: for every field the first source
    with a usable value wins. Compliance inputs may live at the top level
    of a source or under a nested "compliance" mapping; the nested mapping
    wins within the same source.
    """
    records: list[Mapping[str, Any]] = []
    for index, source in enumerate(sources):
        if isinstance(source, Mapping):
            records.append(source)
        else:
            logger.warning(
                "reconcile_deal | skipped_source=%s | type=%s",
                index,
                type(source).__name__,
            )

    values = _collect(records, DEAL_FIELDS)
    if "id" not in values:
        raise ValueError("Deal record has no id in any source")

    compliance_sources: list[Mapping[str, Any]] = []
    for record in records:
        nested = record.get("compliance")
        if isinstance(nested, Mapping):
            compliance_sources.append(nested)
        compliance_sources.append(record)
    values["compliance"] = ComplianceInputs(**_collect(compliance_sources, COMPLIANCE_FIELDS))

    deal = Deal(**values)
    logger.debug(
        "reconcile_deal | deal_id=%s | sources=%s | fields=%s",
        deal.id,
        len(records),
        sorted(key for key in values if key != "compliance"),
    )
    return deal


def _provider_kind(record: Mapping[str, Any]) -> ProviderKind:
    for alias in ("kind", "provider_type", "type"):
        text = normalize_text(record.get(alias))
        if not text:
            continue
        if "investor" in text:
            return ProviderKind.INVESTOR
        if "cde" in text or "community development" in text:
            return ProviderKind.CDE
    return ProviderKind.CDE


def _provider_active(record: Mapping[str, Any]) -> bool:
    if "active" in record:
        flag = normalize_bool(record.get("active"))
        if flag is not None:
            return flag
    status = normalize_text(record.get("status"))
    if status:
        return status == "active"
    return True


def normalize_provider(record: Mapping[str, Any]) -> Provider:
    """Build a Provider from one raw directory row."""
    if not isinstance(record, Mapping):
        raise ValueError(f"Provider record must be a mapping, got {type(record).__name__}")

    values = _collect([record], PROVIDER_FIELDS)
    if "id" not in values:
        raise ValueError("Provider record has no id")

    values["kind"] = _provider_kind(record)
    values["active"] = _provider_active(record)
    return Provider(**values)
