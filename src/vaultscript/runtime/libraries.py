"""
Builtin library objects bound by `use`.

- `blockchain`: a toy single-account ledger.
- `data_science`: descriptive statistics and filtering over CSV datasets
  or plain lists of numbers, computed with numpy.

Both write progress lines to the interpreter's output stream.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union
import csv
import hashlib
import logging
import uuid

import numpy as np

from .builtins import BuiltinMethod, LibraryRegistry
from .values import canonical, parse_number, type_name
from ..errors import error_invalid_arguments


logger = logging.getLogger(__name__)


def _require_text(value: Any, owner: str, method: str, what: str) -> str:
    if not isinstance(value, str):
        raise error_invalid_arguments(owner, method, f"{what} must be a string")
    return value


def _require_number(value: Any, owner: str, method: str, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise error_invalid_arguments(owner, method, f"{what} must be a number")
    return float(value)


# =============================================================================
# Blockchain ledger
# =============================================================================

@dataclass
class Transaction:
    to_address: str
    amount: float
    transaction_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    digest: str = ""


class BlockchainLedger:
    """A single account with a balance and an append-only history."""

    type_name = "blockchain"

    def __init__(self, output: TextIO):
        self.output = output
        self.address: Optional[str] = None
        self.balance = 0.0
        self.history: List[Transaction] = []

    def _say(self, text: str) -> None:
        print(f"[blockchain] {text}", file=self.output)

    def init(self, private_key: str, amount: float) -> None:
        self.address = hashlib.sha256(private_key.encode("utf-8")).hexdigest()[:16]
        self.balance = amount
        self._say("Initialized:")
        print(f"    Address: {self.address}", file=self.output)
        print(f"    Balance: {canonical(self.balance)}", file=self.output)

    def transaction(self, to_address: str, amount: float) -> None:
        if amount > self.balance:
            self._say("Transaction failed: insufficient funds.")
            return None
        self.balance -= amount
        tx = Transaction(to_address, amount)
        payload = f"{self.address}{to_address}{amount}{tx.transaction_id}"
        tx.digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        self.history.append(tx)
        logger.debug("Ledger %s sent %s to %s", self.address, amount, to_address)

        self._say("Transaction successful!")
        print(f"    hash: {tx.digest}", file=self.output)
        print(f"    transactionID: {tx.transaction_id}", file=self.output)
        print(f"    amount: {canonical(tx.amount)}", file=self.output)
        print(f"    to Address: {tx.to_address}", file=self.output)
        return None

    def show_current_balance(self) -> float:
        self._say(f"Current Balance: {canonical(self.balance)}")
        return self.balance

    def show_transaction_history(self) -> Optional[List[str]]:
        if not self.history:
            self._say("No transactions found.")
            return None
        self._say("Transaction History:")
        for number, tx in enumerate(self.history, start=1):
            print(f"  Transaction {number}:", file=self.output)
            print(f"    To Address: {tx.to_address}", file=self.output)
            print(f"    Amount: {canonical(tx.amount)}", file=self.output)
            print(f"    Transaction ID: {tx.transaction_id}", file=self.output)
        return [tx.transaction_id for tx in self.history]


def _register_blockchain_methods(registry: LibraryRegistry) -> None:
    owner = BlockchainLedger.type_name

    def _init(ledger: BlockchainLedger, key: Any, amount: Any) -> None:
        ledger.init(
            _require_text(key, owner, "init", "private key"),
            _require_number(amount, owner, "init", "amount"),
        )

    def _transaction(ledger: BlockchainLedger, to_address: Any, amount: Any) -> None:
        value = _require_number(amount, owner, "transaction", "amount")
        if value <= 0:
            raise error_invalid_arguments(owner, "transaction", "amount must be positive")
        ledger.transaction(_require_text(to_address, owner, "transaction", "address"), value)

    registry.register_method(owner, BuiltinMethod("init", _init, 2, 2))
    registry.register_method(owner, BuiltinMethod("transaction", _transaction, 2, 2))
    registry.register_method(owner, BuiltinMethod(
        "showCurrentBalance", lambda ledger: ledger.show_current_balance()))
    registry.register_method(owner, BuiltinMethod(
        "showTransactionHistory", lambda ledger: ledger.show_transaction_history()))


# =============================================================================
# Data science helper
# =============================================================================

class Dataset:
    """Columns loaded from a CSV file; numeric columns are float arrays."""

    type_name = "dataset"

    def __init__(self, columns: Dict[str, Union[np.ndarray, List[str]]], size: int):
        self.columns = columns
        self.size = size

    def column(self, name: str) -> Union[np.ndarray, List[str]]:
        if name not in self.columns:
            raise KeyError(name)
        return self.columns[name]

    def select(self, mask: np.ndarray) -> "Dataset":
        columns = {}
        for name, values in self.columns.items():
            if isinstance(values, np.ndarray):
                columns[name] = values[mask]
            else:
                columns[name] = [v for v, keep in zip(values, mask) if keep]
        return Dataset(columns, int(mask.sum()))


_COMPARATORS = {
    ">": np.greater,
    "<": np.less,
    ">=": np.greater_equal,
    "<=": np.less_equal,
    "==": np.equal,
    "!=": np.not_equal,
}


def load_csv(path: Union[str, Path]) -> Dataset:
    """Read a CSV file with a header row into a Dataset."""
    with open(path, "r", encoding="utf-8", newline="") as fp:
        rows = list(csv.reader(fp))
    if not rows:
        raise ValueError(f"CSV file is empty: {path}")

    header = [name.strip() for name in rows[0]]
    body = [row for row in rows[1:] if any(cell.strip() for cell in row)]
    columns: Dict[str, Union[np.ndarray, List[str]]] = {}
    for position, name in enumerate(header):
        cells = [row[position].strip() if position < len(row) else "" for row in body]
        numbers = [parse_number(cell) for cell in cells]
        if all(number is not None for number in numbers):
            columns[name] = np.array(numbers, dtype=float)
        else:
            columns[name] = cells
    return Dataset(columns, len(body))


class DataScienceLibrary:
    """Statistics over dataset columns or plain numeric lists."""

    type_name = "data_science"

    def __init__(self, output: TextIO):
        self.output = output

    def _say(self, text: str) -> None:
        print(f"[data science] {text}", file=self.output)

    def numeric_values(self, data: Any, column: Optional[str], method: str) -> np.ndarray:
        """Resolve (data, column) to a float array, validating as we go."""
        if isinstance(data, Dataset):
            if column is None:
                raise error_invalid_arguments(self.type_name, method, "a column name is required")
            try:
                values = data.column(column)
            except KeyError:
                raise error_invalid_arguments(
                    self.type_name, method, f"attribute '{column}' does not exist in the dataset"
                )
            if not isinstance(values, np.ndarray):
                raise error_invalid_arguments(
                    self.type_name, method, f"attribute '{column}' is not numeric"
                )
            return values
        if isinstance(data, list):
            if column is not None:
                raise error_invalid_arguments(
                    self.type_name, method, "a list takes no column name"
                )
            if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in data):
                raise error_invalid_arguments(self.type_name, method, "list must hold only numbers")
            return np.array(data, dtype=float)
        raise error_invalid_arguments(
            self.type_name, method, f"expected a dataset or list, got {type_name(data)}"
        )

    def _label(self, column: Optional[str]) -> str:
        return f"'{column}'" if column is not None else "list"

    def _non_empty(self, values: np.ndarray, method: str) -> np.ndarray:
        if values.size == 0:
            raise error_invalid_arguments(self.type_name, method, "no values")
        return values

    def load_csv(self, path: str) -> Dataset:
        try:
            dataset = load_csv(path)
        except (OSError, ValueError) as exc:
            raise error_invalid_arguments(self.type_name, "loadCSV", str(exc))
        self._say(f"Loaded data from {path}")
        return dataset

    def mean(self, data: Any, column: Optional[str] = None) -> float:
        values = self._non_empty(self.numeric_values(data, column, "calculateMean"), "calculateMean")
        result = float(np.mean(values))
        self._say(f"Mean of {self._label(column)}: {canonical(result)}")
        return result

    def median(self, data: Any, column: Optional[str] = None) -> float:
        values = self._non_empty(self.numeric_values(data, column, "calculateMedian"), "calculateMedian")
        result = float(np.median(values))
        self._say(f"Median of {self._label(column)}: {canonical(result)}")
        return result

    def std_dev(self, data: Any, column: Optional[str] = None) -> float:
        values = self._non_empty(self.numeric_values(data, column, "calculateStdDev"), "calculateStdDev")
        # Sample standard deviation; a single value has no spread
        result = float(np.std(values, ddof=1)) if values.size > 1 else 0.0
        self._say(f"Standard Deviation of {self._label(column)}: {canonical(result)}")
        return result

    def filter(self, data: Any, column: Optional[str], operator: str, threshold: float):
        comparator = _COMPARATORS.get(operator)
        if comparator is None:
            raise error_invalid_arguments(
                self.type_name, "filterData",
                f"unsupported operator '{operator}', use one of {', '.join(_COMPARATORS)}",
            )
        values = self.numeric_values(data, column, "filterData")
        mask = comparator(values, threshold)
        if isinstance(data, Dataset):
            result = data.select(mask)
            count = result.size
        else:
            result = [v for v, keep in zip(data, mask) if keep]
            count = len(result)
        self._say(f"Filtered data based on {self._label(column)} {operator} {canonical(threshold)}")
        self._say(f"Number of instances after filtering: {count}")
        return result


def _register_data_science_methods(registry: LibraryRegistry) -> None:
    owner = DataScienceLibrary.type_name

    def _split(args: tuple, method: str):
        """(data) or (data, column) -> (data, column)."""
        data = args[0]
        column = None
        if len(args) > 1:
            column = _require_text(args[1], owner, method, "column name")
        return data, column

    def _load(lib: DataScienceLibrary, path: Any) -> Dataset:
        return lib.load_csv(_require_text(path, owner, "loadCSV", "path"))

    def _mean(lib: DataScienceLibrary, *args: Any) -> float:
        return lib.mean(*_split(args, "calculateMean"))

    def _median(lib: DataScienceLibrary, *args: Any) -> float:
        return lib.median(*_split(args, "calculateMedian"))

    def _std_dev(lib: DataScienceLibrary, *args: Any) -> float:
        return lib.std_dev(*_split(args, "calculateStdDev"))

    def _filter(lib: DataScienceLibrary, *args: Any):
        # (dataset, column, op, threshold) or (list, op, threshold)
        if len(args) == 4:
            data, column, operator, threshold = args
            column = _require_text(column, owner, "filterData", "column name")
        elif len(args) == 3:
            data, operator, threshold = args
            column = None
        else:
            raise error_invalid_arguments(owner, "filterData", f"{len(args)} argument(s) given")
        return lib.filter(
            data,
            column,
            _require_text(operator, owner, "filterData", "operator"),
            _require_number(threshold, owner, "filterData", "threshold"),
        )

    registry.register_method(owner, BuiltinMethod("loadCSV", _load, 1, 1))
    registry.register_method(owner, BuiltinMethod("calculateMean", _mean, 1, 2))
    registry.register_method(owner, BuiltinMethod("calculateMedian", _median, 1, 2))
    registry.register_method(owner, BuiltinMethod("calculateStdDev", _std_dev, 1, 2))
    registry.register_method(owner, BuiltinMethod("filterData", _filter, 3, 4))

    registry.register_method(Dataset.type_name, BuiltinMethod(
        "numInstances", lambda dataset: dataset.size))
    registry.register_method(Dataset.type_name, BuiltinMethod(
        "getColumn",
        lambda dataset, name: _column_as_list(dataset, name),
        1, 1,
    ))


def _column_as_list(dataset: Dataset, name: Any) -> List[Any]:
    name = _require_text(name, Dataset.type_name, "getColumn", "column name")
    try:
        values = dataset.column(name)
    except KeyError:
        raise error_invalid_arguments(Dataset.type_name, "getColumn", f"no column '{name}'")
    if isinstance(values, np.ndarray):
        return [int(v) if float(v).is_integer() else float(v) for v in values]
    return list(values)


def install_default_libraries(registry: LibraryRegistry) -> None:
    """Register the `blockchain` and `data_science` libraries and their methods."""
    registry.register("blockchain", BlockchainLedger)
    registry.register("data_science", DataScienceLibrary)
    _register_blockchain_methods(registry)
    _register_data_science_methods(registry)
