"""
seed.py - Build an in-memory customer store from CSV exports.

    load_seed_csv(customers_csv, treatments_csv) -> InMemoryCustomerStore

customers.csv   columns: id, email, name, phone
treatments.csv  columns: email, status, cost

Blank cost cells are left out of the treatment document, so the aggregator
skips those rows the same way it skips a document without a cost field.
"""

from __future__ import annotations

import math
import os
from typing import Any

import pandas as pd

from customer_store import InMemoryCustomerStore
from logging_config import get_logger

logger = get_logger(__name__)

CUSTOMER_COLUMNS = ["id", "email"]
OPTIONAL_CUSTOMER_COLUMNS = ["name", "phone"]
TREATMENT_COLUMNS = ["email", "status", "cost"]


def _read_csv(csv_path: str, required: list[str]) -> pd.DataFrame:
    if csv_path is None:
        raise ValueError("csv_path cannot be None")

    csv_path = str(csv_path).strip()
    if not csv_path:
        raise ValueError("csv_path cannot be empty")

    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"Seed CSV not found: {csv_path}")

    try:
        # Everything as text; costs are typed per cell below.
        df = pd.read_csv(csv_path, encoding="utf-8-sig", dtype=str, keep_default_na=False)
    except UnicodeDecodeError:
        logger.warning(
            "csv_encoding_warning | path=%s | reason='utf-8 decode failed' | fallback=latin-1",
            csv_path,
        )
        df = pd.read_csv(csv_path, encoding="latin-1", dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError as exc:
        raise ValueError(f"Seed CSV is empty: {csv_path}") from exc
    except Exception as exc:
        raise ValueError(f"Failed to read CSV '{csv_path}': {exc}") from exc

    df.columns = [str(col).strip().lower() for col in df.columns]
    df = df.apply(lambda column: column.str.strip())
    df = df[(df != "").any(axis=1)].copy()

    missing = [column for column in required if column not in df.columns]
    if missing:
        raise ValueError(
            f"Seed CSV missing required columns: {missing}\n"
            f"Required: {required}\n"
            f"Found: {list(df.columns)}"
        )
    return df


def parse_cost_cell(text: str) -> Any:
    """Type a CSV cost cell the way the document store would hold it.

    "" -> None (field absent), "100" -> 100, "12.5" -> 12.5, anything
    non-numeric stays a string.
    """
    text = str(text or "").strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return text
    return value if math.isfinite(value) else text


def load_seed_csv(customers_csv: str, treatments_csv: str) -> InMemoryCustomerStore:
    """Load customers and their treatments from two CSV files."""
    customers_df = _read_csv(customers_csv, CUSTOMER_COLUMNS)
    treatments_df = _read_csv(treatments_csv, TREATMENT_COLUMNS)

    for optional in OPTIONAL_CUSTOMER_COLUMNS:
        if optional not in customers_df.columns:
            customers_df[optional] = ""

    store = InMemoryCustomerStore()
    for row in customers_df.to_dict(orient="records"):
        store.add_customer(
            {
                "id": row["id"],
                "email": row["email"],
                "name": row["name"],
                "phone": row["phone"],
            }
        )

    blank_costs = 0
    for row in treatments_df.to_dict(orient="records"):
        record: dict[str, Any] = {"status": row["status"]}
        cost = parse_cost_cell(row["cost"])
        if cost is None:
            blank_costs += 1
        else:
            record["cost"] = cost
        store.add_treatment(row["email"], record)

    if blank_costs:
        logger.warning("csv_cost_warning | blank_cost_rows=%s | fallback='cost omitted'", blank_costs)
    logger.info(
        "seed_loaded | customers=%s | treatments=%s",
        len(customers_df),
        len(treatments_df),
    )
    return store
