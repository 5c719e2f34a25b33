#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from typing import Any, Protocol, Sequence, runtime_checkable

import polars as pl


@runtime_checkable
class DataframeFilterMethodType(Protocol):
    """Callable type def for Dataframe filtering functions."""

    def __call__(
        self,
        dataframe: pl.DataFrame,
        column_name: str,
        value: Any,
        **kwargs: int | Any,
    ) -> pl.DataFrame: ...


def exact_match_filter_dataframe(
    dataframe: pl.DataFrame, column_name: str, value: Any, **kwargs: int | Any
) -> pl.DataFrame:
    """Filter dataframe by exact matching value on 1 column

    Parameters
    ----------
        dataframe:      Dataframe to filter
        column_name:    Name of column
        value:          Value to match against

    Returns
    -------
        Filtered dataframe

    """
    if value is None:
        return dataframe.filter(pl.col(column_name).is_null())
    return dataframe.filter(pl.col(column_name) == value)


def is_sequence_member_filter_dataframe(
    dataframe: pl.DataFrame, column_name: str, value: Sequence, **kwargs: int | Any
) -> pl.DataFrame:
    """Filter dataframe for rows whose column_name is in value."""
    return dataframe.filter(pl.col(column_name).is_in(list(value)))


def substring_match_predicate(columns: Sequence[str], term: str) -> pl.Expr:
    """A predicate matching rows where any of `columns` contains `term`,
    ignoring case. Null cells never match."""
    term = term.lower()
    predicate = pl.lit(False)
    for column in columns:
        predicate = predicate | (
            pl.col(column)
            .str.to_lowercase()
            .str.contains(term, literal=True)
            .fill_null(False)
        )
    return predicate


def filter_dataframe(
    dataframe: pl.DataFrame,
    filter_criteria: list[tuple[str, Any, DataframeFilterMethodType]],
) -> pl.DataFrame:
    """Filter dataframe given a filter method, column name and target value

    Parameters
    ----------
    dataframe
        Dataframe to filter
    filter_criteria
        A list of filter constraints on each column,
        each tuple contains [column_name, value, filter_method]

    Returns
    -------
        Filtered dataframe
    """
    for column_name, filter_value, filter_method in filter_criteria:
        dataframe = filter_method(
            dataframe=dataframe,
            column_name=column_name,
            value=filter_value,
        )
    return dataframe
