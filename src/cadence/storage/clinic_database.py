#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import copy
import datetime
import logging
from pathlib import Path
from typing import Any, Self

import polars as pl
from polars.exceptions import NoDataError

from cadence.readers import load_json
from cadence.storage.database_schemas import (
    DATABASE_SCHEMAS,
    DatabaseNamespace,
    Timestamp,
)
from cadence.writers import save_json

logger = logging.getLogger(__name__)


class ClinicDatabase:
    """In-memory store for the clinic's patients, recurrence rules and stored
    appointments.

    Each namespace is a polars dataframe with a fixed schema. The database is
    persisted explicitly as a JSON snapshot (see `save` and `load`); nothing
    is written unless asked.
    """

    # Database schema. Declared as class attributes so that it could be available prior to init
    dbs_schemas: dict[DatabaseNamespace, dict[str, Any]] = DATABASE_SCHEMAS

    def __init__(self):
        self._dbs: dict[DatabaseNamespace, pl.DataFrame] = {
            namespace: pl.DataFrame([], schema=self.dbs_schemas[namespace])
            for namespace in self.dbs_schemas
        }

    def to_dict(self) -> dict[str, Any]:
        """Serializes to a dictionary

        We aim to make this serialization reversible, while still somewhat readable.

        Returns:
            A serialized dict.
        """

        def convert_datetime(value: Any) -> Any:
            if isinstance(value, (datetime.date, datetime.datetime)):
                return value.isoformat()
            return value

        return {
            "_dbs": {
                str(namespace): [
                    {k: convert_datetime(v) for k, v in record.items()}
                    for record in database.to_dicts()
                ]
                for namespace, database in self._dbs.items()
            },
        }

    @classmethod
    def from_dict(cls, serialized_dict: dict[str, Any]) -> Self:
        """Load a serialized dict produced by to_dict.

        Args:
            serialized_dict:    Serialized dict object.

        Returns:
            ClinicDatabase object.
        """

        def convert_datetime(value, schema: dict[str, Any], key: str):
            if schema[key] == Timestamp:
                return datetime.datetime.fromisoformat(value) if value else None
            return value

        database = cls()
        for name, records in serialized_dict["_dbs"].items():
            namespace = DatabaseNamespace(name)
            schema = cls.dbs_schemas[namespace]
            records = [
                {k: convert_datetime(v, schema, k) for k, v in record.items()}
                for record in records
            ]
            database._dbs[namespace] = pl.DataFrame(records, schema=schema)
        return database

    def save(self, path: str | Path) -> None:
        """Write a JSON snapshot of the database to `path`."""
        save_json(self.to_dict(), path)
        logger.info(f"Clinic database saved to {path}")

    @classmethod
    def load(cls, path: str | Path) -> Self:
        """Restore a database from a snapshot written by `save`."""
        database = cls.from_dict(load_json(path))
        logger.info(f"Clinic database loaded from {path}")
        return database

    def get_database(self, namespace: DatabaseNamespace) -> pl.DataFrame:
        """Get a database given the namespace

        Note that the database returned is a subview of the original database.
        Please treat it as an immutable object to avoid unintended effect.
        Use add / remove functions to modify database if needed.

        Parameters
        ----------
        namespace:
            Database namespace

        Returns
        -------
            Requested database
        """
        return self._dbs[namespace]

    def add_to_database(
        self,
        namespace: DatabaseNamespace,
        rows: list[dict[str, Any]],
    ) -> None:
        """Add multiple rows to a database.

        Parameters
        ----------
        namespace
            Database namespace
        rows
            List of rows to be added, each item should be a Dict of column and value

        Raises
        ------
        KeyError:   When provided column names in rows does not match given schema
        """
        if not rows:
            return
        # Check if column name in rows are found in namespace schema
        rows_column_names = {x for row in rows for x in row.keys()}
        schema_column_names = set(self.dbs_schemas[namespace].keys())
        if rows_column_names - schema_column_names:
            raise KeyError(
                f"Only column names {schema_column_names} are allowed for namespace {namespace}. "
                f"Found unknown column name {rows_column_names - schema_column_names}"
            )
        rows = copy.deepcopy(rows)
        self._dbs[namespace] = self._dbs[namespace].vstack(
            pl.DataFrame(rows, schema=self.dbs_schemas[namespace])
        )

    def remove_from_database(
        self,
        namespace: DatabaseNamespace,
        predicate: pl.Expr,
    ) -> None:
        """Remove multiple rows from a database.

        Parameters
        ----------
        namespace
            Database namespace
        predicate
            A polars predicate that evaluates to boolean, used to identify the rows to remove

        Raises
        ------
        NoDataError: If no matching rows where found
        """
        if self._dbs[namespace].filter(predicate).is_empty():
            raise NoDataError(f"No db entry matching {predicate=} found")
        self._dbs[namespace] = self._dbs[namespace].filter(~predicate)
