# ==============================================================================
# app/engine/snapshot.py
# ------------------------------------------------------------------------------
# Normalizes a revenue snapshot into the frame every engine stage works on:
# one row per revenue record with a `turnover` column, a datetime `date`,
# `month` and `week` keys, a day/night `shift` and a clean `operator_id`.
# ==============================================================================

import logging
import math
import numpy as np
import pandas as pd
from .schema import CHANNEL_COLUMNS
from .validator import require_frame


def clean_id(value):
    """NaN/None -> None; integral floats (pandas upcasts ints next to None) -> int."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return int(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


def prepare_revenue(revenue, company_codes=None):
    """
    Returns a copy of the revenue snapshot ready for aggregation.

    Records whose channel total is zero, negative or not finite are dropped, as
    are undated records. If `company_codes` is given, other companies are dropped.
    """
    df = require_frame('revenue', revenue)

    channels = df[CHANNEL_COLUMNS].apply(pd.to_numeric, errors='coerce').fillna(0.0)
    df['turnover'] = channels.sum(axis=1).astype(float)
    df['date'] = pd.to_datetime(df['date'], errors='coerce').dt.normalize()

    undated = int(df['date'].isna().sum())
    if undated:
        logging.warning(f"Ignoring {undated} revenue record(s) without a valid date.")

    df = df[df['date'].notna() & np.isfinite(df['turnover']) & (df['turnover'] > 0)].copy()

    df['company_code'] = df['company_code'].fillna('').astype(str).str.strip().str.lower()
    if company_codes is not None:
        df = df[df['company_code'].isin(list(company_codes))].copy()

    df['shift'] = np.where(df['shift'] == 'night', 'night', 'day')
    df['operator_id'] = pd.Series([clean_id(v) for v in df['operator_id']], index=df.index, dtype=object)
    df['month'] = df['date'].dt.to_period('M').dt.start_time
    df['week'] = df['date'] - pd.to_timedelta(df['date'].dt.weekday, unit='D')
    return df


def count_shifts(frame):
    """Number of distinct (operator, date, shift) units in `frame`."""
    if frame.empty:
        return 0
    return int(len(frame[['operator_id', 'date', 'shift']].drop_duplicates()))
