"""
directory.py - File-backed deal and provider accessors.

The matching engine only needs two lookups from the marketplace:
"give me this deal" and "give me the candidate providers". This module
serves both from a snapshot on disk:

    {"deals": [...], "providers": [...]}     (JSON, see data/marketplace.json)
    providers.csv                            (one provider row per line)

Raw rows are normalized on load; a bad row is skipped with a warning and
never takes the whole snapshot down.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from logging_config import get_logger
from models import Deal, ProgramType, Provider
from normalize import PROVIDER_FIELDS, normalize_program, normalize_provider, reconcile_deal

logger = get_logger(__name__)

PROVIDER_ID_COLUMNS = PROVIDER_FIELDS["id"][0]


class DealNotFoundError(LookupError):
    """Raised when a deal id is not in the directory."""

    def __init__(self, deal_id: str) -> None:
        super().__init__(f"Deal not found: {deal_id!r}")
        self.deal_id = deal_id


def _build_deal(record: Mapping[str, Any]) -> Deal:
    """Reconcile one deal entry. Top-level fields win over its `sources`."""
    sources = record.get("sources") or []
    if not isinstance(sources, list):
        raise ValueError("deal 'sources' must be a list")
    primary = {key: value for key, value in record.items() if key != "sources"}
    return reconcile_deal(primary, *sources)


def load_providers_csv(csv_path: str) -> list[Provider]:
    """Load and normalize a provider directory CSV file."""
    if csv_path is None:
        raise ValueError("csv_path cannot be None")

    csv_path = str(csv_path).strip()
    if not csv_path:
        raise ValueError("csv_path cannot be empty")

    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"Providers CSV not found: {csv_path}")

    try:
        df = pd.read_csv(csv_path, encoding="utf-8-sig", dtype=str)
    except UnicodeDecodeError:
        logger.warning(
            "csv_encoding_warning | path=%s | reason='utf-8 decode failed' | fallback=latin-1",
            csv_path,
        )
        df = pd.read_csv(csv_path, encoding="latin-1", dtype=str)
    except pd.errors.EmptyDataError as exc:
        raise ValueError(f"Providers CSV is empty: {csv_path}") from exc
    except (pd.errors.ParserError, OSError) as exc:
        raise ValueError(f"Failed to read CSV '{csv_path}': {exc}") from exc

    df.columns = [str(col).strip().lower() for col in df.columns]
    df = df.dropna(how="all").copy()

    if df.empty:
        raise ValueError(f"Providers CSV is empty: {csv_path}")

    if not any(column in df.columns for column in PROVIDER_ID_COLUMNS):
        raise ValueError(
            f"Providers CSV has no id column.\n"
            f"Expected one of: {list(PROVIDER_ID_COLUMNS)}\n"
            f"Found: {list(df.columns)}"
        )

    # NaN -> None so the normalizers see missing cells as missing.
    records = df.astype(object).where(pd.notna(df), None).to_dict(orient="records")

    providers: list[Provider] = []
    for index, record in enumerate(records):
        try:
            providers.append(normalize_provider(record))
        except ValueError as exc:
            logger.warning(
                "csv_provider_skipped | path=%s | row_index=%s | error=%s",
                csv_path,
                index,
                exc,
            )

    logger.info(
        "csv_loaded | path=%s | rows=%s | providers=%s | columns=%s",
        csv_path,
        len(df),
        len(providers),
        list(df.columns),
    )
    return providers


class MarketplaceDirectory:
    """In-memory deal and provider lookup, loaded once and only read."""

    def __init__(self, deals: Iterable[Deal] = (), providers: Iterable[Provider] = ()) -> None:
        self._deals: dict[str, Deal] = {}
        for deal in deals:
            if deal.id in self._deals:
                logger.warning("directory_duplicate_deal | deal_id=%s | kept=first", deal.id)
                continue
            self._deals[deal.id] = deal

        seen: set[str] = set()
        kept: list[Provider] = []
        for provider in providers:
            if provider.id in seen:
                logger.warning("directory_duplicate_provider | provider_id=%s | kept=first", provider.id)
                continue
            seen.add(provider.id)
            kept.append(provider)
        self._providers: tuple[Provider, ...] = tuple(kept)

    @classmethod
    def from_records(
        cls,
        deals: Iterable[Mapping[str, Any]] = (),
        providers: Iterable[Mapping[str, Any]] = (),
    ) -> "MarketplaceDirectory":
        """Normalize raw records, skipping the ones that cannot be used."""
        built_deals: list[Deal] = []
        for index, record in enumerate(deals):
            try:
                if not isinstance(record, Mapping):
                    raise ValueError(f"deal record must be a mapping, got {type(record).__name__}")
                built_deals.append(_build_deal(record))
            except ValueError as exc:
                logger.warning("directory_deal_skipped | index=%s | error=%s", index, exc)

        built_providers: list[Provider] = []
        for index, record in enumerate(providers):
            try:
                built_providers.append(normalize_provider(record))
            except ValueError as exc:
                logger.warning("directory_provider_skipped | index=%s | error=%s", index, exc)

        return cls(built_deals, built_providers)

    @classmethod
    def from_json(cls, path: str) -> "MarketplaceDirectory":
        """Load a `{"deals": [...], "providers": [...]}` snapshot."""
        target = Path(path)
        if not target.exists():
            raise FileNotFoundError(f"Marketplace file not found: {target}")

        try:
            raw = json.loads(target.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Marketplace file is not valid JSON: {target}: {exc}") from exc

        if not isinstance(raw, dict):
            raise ValueError(f"Marketplace file must contain a JSON object: {target}")

        deals = raw.get("deals", [])
        providers = raw.get("providers", [])
        if not isinstance(deals, list) or not isinstance(providers, list):
            raise ValueError(f"'deals' and 'providers' must be lists: {target}")

        directory = cls.from_records(deals, providers)
        logger.info(
            "directory_loaded | path=%s | deals=%s | providers=%s",
            target,
            directory.deal_count,
            directory.provider_count,
        )
        return directory

    @classmethod
    def from_files(
        cls,
        json_path: Optional[str] = None,
        providers_csv: Optional[str] = None,
    ) -> "MarketplaceDirectory":
        """Combine a JSON snapshot with an optional provider CSV.

        CSV providers are added after the JSON ones; a repeated id keeps
        the JSON row.
        """
        base = cls.from_json(json_path) if json_path else cls()
        if not providers_csv:
            return base
        extra = load_providers_csv(providers_csv)
        return cls(base._deals.values(), base._providers + tuple(extra))

    @property
    def deal_count(self) -> int:
        return len(self._deals)

    @property
    def provider_count(self) -> int:
        return len(self._providers)

    def deal_ids(self) -> list[str]:
        return sorted(self._deals)

    def get_deal(self, deal_id: str) -> Deal:
        key = str(deal_id or "").strip()
        deal = self._deals.get(key)
        if deal is None:
            raise DealNotFoundError(key)
        return deal

    def list_providers(
        self,
        program: Optional[ProgramType | str] = None,
        active_only: bool = True,
    ) -> list[Provider]:
        """Candidate providers, in directory order.

        With a program, providers whose program focus is unknown are kept:
        the scorer gives them no program credit instead of excluding them.
        """
        wanted = normalize_program(program) if program is not None else None
        result: list[Provider] = []
        for provider in self._providers:
            if active_only and not provider.active:
                continue
            if wanted is not None and provider.program_focus and wanted not in provider.program_focus:
                continue
            result.append(provider)
        return result
