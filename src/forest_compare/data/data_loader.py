import lzma
import os
import zipfile
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import pandas as pd
from pandas.api.types import is_numeric_dtype

from forest_compare.exceptions import DatasetReadError, SchemaError

SPLIT_COLUMN = "split"

# Everything pandas/the decompressors raise for a file that exists but is unusable
_READ_ERRORS = (
    OSError,
    EOFError,
    UnicodeDecodeError,
    zipfile.BadZipFile,
    lzma.LZMAError,
    pd.errors.ParserError,
    pd.errors.EmptyDataError,
)


@dataclass(frozen=True)
class DatasetSchema:
    """Column contract of the dataset: one label plus numeric features.

    An empty ``features`` tuple means "every column except the label".
    """

    label: str = "label"
    features: Tuple[str, ...] = ()

    def resolve_features(self, columns: Iterable[str]) -> list[str]:
        if self.features:
            return list(self.features)
        return [c for c in columns if c not in (self.label, SPLIT_COLUMN)]


class DataLoader:
    """
    Loads and validates the labeled dataset from a (compressed) delimited file.
    """

    def __init__(self, input_path: str, schema: Optional[DatasetSchema] = None, sep: str = ","):
        self.input_path = str(input_path)
        self.schema = schema or DatasetSchema()
        self.sep = sep

    def read(self) -> pd.DataFrame:
        """
        Read the raw table; compression is inferred from the file extension.
        """
        if not os.path.exists(self.input_path):
            raise FileNotFoundError(f"File not found: {self.input_path}")

        try:
            df = pd.read_csv(self.input_path, sep=self.sep, compression="infer")
        except FileNotFoundError:
            raise
        except _READ_ERRORS as exc:
            raise DatasetReadError(self.input_path, str(exc)) from exc

        print(f"[INFO] Loaded dataset: Rows: {df.shape[0]}, Columns: {df.shape[1]}")
        return df

    def validate(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Check the column contract and return label + features in schema order.
        """
        label = self.schema.label
        if label not in df.columns:
            raise SchemaError(label, "label column not found")

        features = self.schema.resolve_features(df.columns)
        if not features:
            raise SchemaError(label, "dataset has no feature columns besides the label")

        for column in features:
            if column not in df.columns:
                raise SchemaError(column, "expected feature column not found")
            if not is_numeric_dtype(df[column]):
                raise SchemaError(column, f"feature column is not numeric (dtype {df[column].dtype})")

        for column in [label] + features:
            if df[column].isna().any():
                raise SchemaError(column, "column contains missing values")

        print(f"[INFO] Column validation passed ({len(features)} features, label '{label}').")
        return df[[label] + features].copy()

    def load_data(self) -> pd.DataFrame:
        """
        Execute the read → validate sequence.
        """
        return self.validate(self.read())


def feature_matrix(df: pd.DataFrame, schema: DatasetSchema) -> Tuple[pd.DataFrame, pd.Series]:
    """Derive the (feature matrix, label vector) pair of a dataset subset."""
    features = schema.resolve_features(df.columns)
    missing = [c for c in [schema.label] + features if c not in df.columns]
    if missing:
        raise SchemaError(missing[0], "column not found in subset")
    return df[features], df[schema.label]
