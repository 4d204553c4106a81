"""Errors raised by the cleaning and modeling pipeline."""


class PricingError(Exception):
    """Base class for pipeline errors."""


class ParseError(PricingError, ValueError):
    """A single raw field could not be parsed (recovered as a null value)."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"Could not parse {field}: {value!r}")


class SchemaError(PricingError, KeyError):
    """The raw listings table is missing required columns."""

    def __init__(self, missing_columns):
        self.missing_columns = list(missing_columns)
        super().__init__(
            f"Raw listings are missing required column(s): {', '.join(self.missing_columns)}"
        )

    def __str__(self):
        return self.args[0]


class ModelFitError(PricingError, RuntimeError):
    """A model (or one hyperparameter combination) could not be fitted."""
