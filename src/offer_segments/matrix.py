"""
Purchase matrix construction.

This module handles:
1. Schema validation of already-parsed transaction rows and offer metadata (Pandera)
2. Pivoting (customer, offer) rows into a binary customer x offer matrix
3. Conversion of matrices and arrays into float point arrays for the engines

File reading is left to the caller; everything here works on in-memory rows.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd
import pandera as pa
from pandera import Column, Check

from .exceptions import InvalidParameter


# =============================================================================
# CONSTANTS
# =============================================================================

CUSTOMER_COL = "customer_name"
OFFER_COL = "offer_id"

# Offer metadata columns known to the profiling step (all optional except offer_id)
OFFER_METADATA_COLUMNS = [
    "offer_id",
    "campaign",
    "varietal",
    "min_qty",
    "discount",
    "origin",
    "past_peak",
]


# =============================================================================
# SCHEMAS
# =============================================================================

def create_transaction_schema(
    customer_col: str = CUSTOMER_COL,
    offer_col: str = OFFER_COL,
) -> pa.DataFrameSchema:
    """Schema for parsed transaction rows: one row per accepted offer."""
    return pa.DataFrameSchema(
        columns={
            customer_col: Column(nullable=False),
            offer_col: Column(nullable=False),
        },
        strict=False,
    )


OFFER_SCHEMA = pa.DataFrameSchema(
    columns={
        "offer_id": Column(nullable=False, unique=True),
        "campaign": Column(nullable=True, required=False),
        "varietal": Column(nullable=True, required=False),
        "min_qty": Column(float, Check.ge(0), nullable=True, required=False, coerce=True),
        "discount": Column(float, Check.in_range(0, 100), nullable=True, required=False, coerce=True),
        "origin": Column(nullable=True, required=False),
        "past_peak": Column(nullable=True, required=False),
    },
    strict=False,
)

BINARY_MATRIX_SCHEMA = pa.DataFrameSchema(
    checks=[
        Check(lambda df: df.isin([0, 1]), error="purchase matrix cells must be 0 or 1"),
    ],
)


def _validate(schema: pa.DataFrameSchema, df: pd.DataFrame, name: str) -> pd.DataFrame:
    """Run a Pandera schema and translate failures into InvalidParameter."""
    try:
        return schema.validate(df)
    except (pa.errors.SchemaError, pa.errors.SchemaErrors) as e:
        raise InvalidParameter(f"{name} failed schema validation: {e}") from e


def validate_offers(offers: pd.DataFrame) -> pd.DataFrame:
    """Validate the offer metadata table and return the (coerced) copy."""
    if OFFER_COL not in offers.columns:
        raise InvalidParameter(f"offer metadata needs an '{OFFER_COL}' column")
    return _validate(OFFER_SCHEMA, offers.copy(), "offer metadata")


# =============================================================================
# PURCHASE MATRIX
# =============================================================================

@dataclass(frozen=True)
class PurchaseMatrix:
    """
    Immutable customer x offer indicator matrix.

    Row order is the customer identity used by every downstream result; the
    column set is fixed at construction.
    """
    values: np.ndarray
    customers: tuple
    offers: tuple

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 2:
            raise InvalidParameter(f"purchase matrix must be 2-D, got shape {values.shape}")
        if values.shape != (len(self.customers), len(self.offers)):
            raise InvalidParameter(
                f"matrix shape {values.shape} does not match "
                f"{len(self.customers)} customers x {len(self.offers)} offers"
            )
        values.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "customers", tuple(self.customers))
        object.__setattr__(self, "offers", tuple(self.offers))

    @property
    def shape(self) -> tuple:
        return self.values.shape

    @property
    def n_customers(self) -> int:
        return self.values.shape[0]

    @property
    def n_offers(self) -> int:
        return self.values.shape[1]

    @classmethod
    def from_array(
        cls,
        values,
        customers: Optional[Sequence] = None,
        offers: Optional[Sequence] = None,
    ) -> "PurchaseMatrix":
        """Wrap a prebuilt 0/1 array, checking that every cell is binary."""
        values = np.asarray(values)
        if values.ndim != 2:
            raise InvalidParameter(f"purchase matrix must be 2-D, got shape {values.shape}")
        if customers is None:
            customers = range(values.shape[0])
        if offers is None:
            offers = range(1, values.shape[1] + 1)
        _validate(BINARY_MATRIX_SCHEMA, pd.DataFrame(values), "purchase matrix")
        return cls(values=values, customers=tuple(customers), offers=tuple(offers))

    def to_frame(self) -> pd.DataFrame:
        """Return a new DataFrame (customers as index, offers as columns)."""
        return pd.DataFrame(
            self.values.astype(int),
            index=pd.Index(self.customers, name=CUSTOMER_COL),
            columns=pd.Index(self.offers, name=OFFER_COL),
        )


def build_purchase_matrix(
    transactions: Union[pd.DataFrame, Iterable],
    customer_col: str = CUSTOMER_COL,
    offer_col: str = OFFER_COL,
    offers: Optional[Union[pd.DataFrame, Sequence]] = None,
) -> PurchaseMatrix:
    """
    Pivot parsed transaction rows into a binary purchase matrix.

    Args:
        transactions: DataFrame (or iterable of (customer, offer) pairs), one row
            per accepted offer. Duplicate rows count once.
        customer_col: Column holding the customer identifier
        offer_col: Column holding the offer identifier
        offers: Offer metadata DataFrame or list of offer ids. When given, its
            order fixes the matrix columns, including offers nobody accepted.

    Returns:
        PurchaseMatrix with customers sorted by identifier
    """
    if not isinstance(transactions, pd.DataFrame):
        transactions = pd.DataFrame(list(transactions), columns=[customer_col, offer_col])

    missing = {customer_col, offer_col} - set(transactions.columns)
    if missing:
        raise InvalidParameter(f"transactions are missing columns: {sorted(missing)}")

    transactions = _validate(
        create_transaction_schema(customer_col, offer_col),
        transactions[[customer_col, offer_col]].copy(),
        "transactions",
    )
    if transactions.empty:
        raise InvalidParameter("transactions are empty")

    if offers is None:
        offer_ids = sorted(transactions[offer_col].unique())
    elif isinstance(offers, pd.DataFrame):
        offer_ids = list(validate_offers(offers)[OFFER_COL])
    else:
        offer_ids = list(offers)
        if len(set(offer_ids)) != len(offer_ids):
            raise InvalidParameter("offer ids must be unique")

    unknown = set(transactions[offer_col]) - set(offer_ids)
    if unknown:
        raise InvalidParameter(f"transactions reference unknown offers: {sorted(unknown)[:10]}")

    pivot = (
        transactions.drop_duplicates()
        .assign(_taken=1)
        .pivot_table(index=customer_col, columns=offer_col, values="_taken", aggfunc="max", fill_value=0)
        .reindex(columns=offer_ids, fill_value=0)
        .sort_index()
    )

    return PurchaseMatrix(
        values=pivot.to_numpy(dtype=np.float64),
        customers=tuple(pivot.index),
        offers=tuple(offer_ids),
    )


def as_points(matrix) -> np.ndarray:
    """
    Convert a PurchaseMatrix, DataFrame or array-like into a 2-D float array.

    The returned array is always a fresh copy, so callers may not affect the
    matrix they were given.
    """
    if isinstance(matrix, PurchaseMatrix):
        X = np.array(matrix.values, dtype=np.float64)
    elif isinstance(matrix, pd.DataFrame):
        X = matrix.to_numpy(dtype=np.float64, copy=True)
    else:
        try:
            X = np.array(matrix, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidParameter(f"cannot interpret input as a numeric matrix: {e}") from e

    if X.ndim != 2:
        raise InvalidParameter(f"expected a 2-D matrix, got shape {X.shape}")
    if X.shape[0] == 0 or X.shape[1] == 0:
        raise InvalidParameter(f"matrix is empty (shape {X.shape})")
    if not np.all(np.isfinite(X)):
        raise InvalidParameter("matrix contains NaN or infinite values")
    return X
