"""Error types raised by the forest comparison pipeline."""

from __future__ import annotations

from sklearn.exceptions import NotFittedError


class SchemaError(ValueError):
    """The dataset does not match the expected column contract."""

    def __init__(self, column: str, reason: str):
        self.column = column
        self.reason = reason
        super().__init__(f"[ERROR] Column '{column}': {reason}")


class DatasetReadError(IOError):
    """The input file exists but could not be decompressed or parsed."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"[ERROR] Could not read dataset at {path}: {reason}")


__all__ = ["DatasetReadError", "NotFittedError", "SchemaError"]
