# ==============================================================================
# app/engine/validator.py
# ------------------------------------------------------------------------------
# Validates snapshot structure before the engine runs and guards plan-row and
# salary-rule identity keys before anything is persisted.
# ==============================================================================

import logging
from collections import Counter
import pandas as pd
from .schema import EXPECTED_FRAMES


class SnapshotError(ValueError):
    """A snapshot is missing columns the engine cannot work without."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class IdentityConflictError(ValueError):
    """Two records claim the same identity key. The write must be aborted."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def validate_frame(name, frame):
    """
    Checks one snapshot against EXPECTED_FRAMES.

    Args:
        name (str): Key into EXPECTED_FRAMES ('revenue', 'adjustments', ...).
        frame: A DataFrame or anything pandas.DataFrame() accepts.

    Returns:
        tuple: A tuple containing:
            - DataFrame: the snapshot with optional columns filled in, or None.
            - list: human-readable error messages (empty when valid).
    """
    rules = EXPECTED_FRAMES[name]
    df = pd.DataFrame(frame).copy()
    errors = []

    # An empty snapshot carries no columns; that is "no data", not an error.
    if df.empty and len(df.columns) == 0:
        return df.reindex(columns=rules['required_columns'] + rules['optional_columns']), []

    missing_columns = [col for col in rules['required_columns'] if col not in df.columns]
    if missing_columns:
        errors.append(f"Snapshot '{name}' is missing required columns: {', '.join(missing_columns)}")
        return None, errors

    for col in rules['optional_columns']:
        if col not in df.columns:
            df[col] = None

    # Non-numeric values are data-quality signals only; the engine treats them as zero.
    for col in rules['numeric_columns']:
        numeric_series = pd.to_numeric(df[col], errors='coerce')
        invalid_rows = df[numeric_series.isna() & df[col].notna()]
        for index in invalid_rows.index:
            logging.warning(
                f"Snapshot '{name}', row {index}: value {invalid_rows.loc[index, col]!r} "
                f"in column '{col}' is not a number and will be ignored."
            )

    return df, errors


def require_frame(name, frame):
    """validate_frame() for engine entry points: raises SnapshotError instead of returning errors."""
    df, errors = validate_frame(name, frame)
    if errors:
        raise SnapshotError(errors)
    return df


def find_duplicate_keys(rows):
    """Returns one error message per plan identity key that occurs more than once."""
    counts = Counter(row.key for row in rows)
    return [
        f"Plan row {key.identity} appears {count} times in one generation."
        for key, count in counts.items() if count > 1
    ]
