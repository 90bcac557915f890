"""Scalar function registry.

Scalar functions are explicit, typed records: a name, an ordered input
signature, an output type, a determinism classification and a pure body.
They are validated once at registration and dispatched by looked-up
signature at query time.

The body receives one ``polars.Series`` per declared input (nulls are
explicit) and returns a sequence of the same length. The output must be
null exactly where any input is null; anything else is a fault that
aborts the whole query.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence, Tuple, Union

import polars as pl

from ..enums import Determinism, FieldType
from ..errors import EvaluationError, PlanError, RegistrationError, SchemaError
from ..schemas import parse_field_type

logger = logging.getLogger(__name__)

ScalarBody = Callable[..., Sequence[Any]]

HIGH_VALUE_THRESHOLD = 5000.0


@dataclass(frozen=True)
class ScalarFunction:
    name: str
    input_types: Tuple[FieldType, ...]
    output_type: FieldType
    determinism: Determinism
    body: ScalarBody = field(compare=False, repr=False)

    def _check_arguments(self, columns: Sequence[pl.Series]) -> int:
        if len(columns) != len(self.input_types):
            raise EvaluationError(
                f"{self.name} expects {len(self.input_types)} argument(s), got {len(columns)}"
            )
        lengths = set()
        for pos, (col, expected) in enumerate(zip(columns, self.input_types), start=1):
            if not isinstance(col, pl.Series):
                raise EvaluationError(f"{self.name}: argument {pos} is not a column")
            if col.dtype != expected.polars_dtype:
                raise EvaluationError(
                    f"{self.name}: argument {pos} has type {col.dtype}, expected {expected.value}"
                )
            lengths.add(len(col))
        if len(lengths) != 1:
            raise EvaluationError(f"{self.name}: argument columns differ in length")
        return lengths.pop()

    def _coerce_output(self, raw: Any) -> pl.Series:
        expected = self.output_type.polars_dtype
        if isinstance(raw, pl.Series):
            if raw.dtype == expected:
                return raw.alias(self.name)
            if raw.dtype == pl.Null:
                return raw.cast(expected).alias(self.name)
            raise EvaluationError(
                f"{self.name} returned {raw.dtype}, declared {self.output_type.value}"
            )
        if raw is None or isinstance(raw, (str, bytes)):
            raise EvaluationError(f"{self.name} must return a sequence, got {type(raw).__name__}")
        try:
            return pl.Series(self.name, list(raw), dtype=expected, strict=True)
        except (TypeError, ValueError, pl.exceptions.PolarsError) as e:
            raise EvaluationError(
                f"{self.name} returned values that are not {self.output_type.value}: {e}"
            ) from e

    def invoke(self, columns: Sequence[pl.Series]) -> pl.Series:
        """Evaluate the function over argument columns.

        Raises:
            EvaluationError: Argument arity/type mismatch, a fault in the body,
                or an output whose length, null positions or type break the
                declared contract.
        """
        length = self._check_arguments(columns)
        try:
            raw = self.body(*columns)
        except EvaluationError:
            raise
        except Exception as e:
            raise EvaluationError(f"{self.name} failed: {e}") from e

        out = self._coerce_output(raw)
        if len(out) != length:
            raise EvaluationError(
                f"{self.name} returned {len(out)} value(s) for {length} input row(s)"
            )
        expected_nulls = columns[0].is_null()
        for col in columns[1:]:
            expected_nulls = expected_nulls | col.is_null()
        if not (out.is_null() == expected_nulls).all():
            raise EvaluationError(f"{self.name} did not preserve input null positions")
        return out


class FunctionRegistry:
    """Named scalar functions available to query text.

    Names are case-insensitive. Functions are registered once and never
    mutated afterwards.
    """

    def __init__(self) -> None:
        self._functions: Dict[str, ScalarFunction] = {}

    def register_scalar_function(
        self,
        name: str,
        input_types: Sequence[Union[FieldType, str]],
        output_type: Union[FieldType, str],
        determinism: Union[Determinism, str],
        body: ScalarBody,
    ) -> None:
        """Register a scalar function.

        Raises:
            RegistrationError: Empty or duplicate name, empty or unsupported
                signature, unknown determinism, or a non-callable body.
        """
        if not isinstance(name, str) or not name.strip():
            raise RegistrationError(f"Invalid function name: {name!r}")
        key = name.strip().lower()
        if key in self._functions:
            raise RegistrationError(f"Scalar function already registered: {name}")
        if not callable(body):
            raise RegistrationError(f"Body of {name} is not callable")
        if not input_types:
            raise RegistrationError(f"{name} must declare at least one input type")
        try:
            inputs = tuple(parse_field_type(t) for t in input_types)
            output = parse_field_type(output_type)
        except SchemaError as e:
            raise RegistrationError(f"{name}: {e}") from e
        try:
            volatility = Determinism(determinism)
        except ValueError as e:
            raise RegistrationError(f"{name}: unknown determinism {determinism!r}") from e

        self._functions[key] = ScalarFunction(
            name=key,
            input_types=inputs,
            output_type=output,
            determinism=volatility,
            body=body,
        )
        logger.info(
            "Registered scalar function %s(%s) -> %s [%s]",
            key,
            ", ".join(t.value for t in inputs),
            output.value,
            volatility.value,
        )

    def get(self, name: str) -> ScalarFunction:
        fn = self._functions.get(str(name).lower())
        if fn is None:
            raise PlanError(f"Unknown function: {name}")
        return fn

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._functions

    def names(self) -> List[str]:
        return list(self._functions)


def classify_transaction(amounts: pl.Series) -> pl.Series:
    """Label amounts strictly above 5000.0 as "High Value", others "Regular"."""
    return pl.select(
        pl.when(amounts.is_null())
        .then(pl.lit(None, dtype=pl.Utf8))
        .when(amounts > HIGH_VALUE_THRESHOLD)
        .then(pl.lit("High Value"))
        .otherwise(pl.lit("Regular"))
        .alias("classify_transaction")
    ).to_series()


def register_builtin_functions(registry: FunctionRegistry) -> None:
    registry.register_scalar_function(
        "classify_transaction",
        [FieldType.FLOAT],
        FieldType.STRING,
        Determinism.IMMUTABLE,
        classify_transaction,
    )
