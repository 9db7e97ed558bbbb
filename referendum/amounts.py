"""
Token Amount Parser

Parses formatted asset strings such as ``"1000.0000 EOS"`` into an exact
Decimal amount and symbol, and formats amounts back into the same canonical
form.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from referendum.exceptions import MalformedAmount

SYMBOL_PATTERN = re.compile(r"^[A-Z]{1,7}$")


@dataclass(frozen=True)
class TokenAmount:
    """A parsed asset string"""
    amount: Decimal
    symbol: str
    precision: int

    def __str__(self) -> str:
        return format_amount(self.amount, self.symbol, self.precision)


def _amount_pattern(precision: int) -> "re.Pattern[str]":
    if precision == 0:
        return re.compile(r"^(?P<number>[0-9]+) (?P<symbol>\S+)$")
    return re.compile(r"^(?P<number>[0-9]+\.[0-9]{%d}) (?P<symbol>\S+)$" % precision)


def parse_token_string(
    value: str,
    symbol: Optional[str] = None,
    precision: int = 4,
) -> TokenAmount:
    """
    Parse an asset string into a TokenAmount.

    Args:
        value: String of the form ``<digits>.<digits> <SYMBOL>``
        symbol: Expected symbol; any valid symbol is accepted when None
        precision: Exact number of decimal places the string must carry

    Raises:
        MalformedAmount: on pattern, sign, precision or symbol mismatch
    """
    if not isinstance(value, str):
        raise MalformedAmount(repr(value), "expected a string")

    text = value.strip()
    if text.startswith("-"):
        raise MalformedAmount(value, "amount is negative")

    match = _amount_pattern(precision).match(text)
    if match is None:
        raise MalformedAmount(value, f"expected '<amount> <SYMBOL>' with {precision} decimal places")

    parsed_symbol = match.group("symbol")
    if not SYMBOL_PATTERN.match(parsed_symbol):
        raise MalformedAmount(value, f"invalid symbol {parsed_symbol!r}")
    if symbol is not None and parsed_symbol != symbol:
        raise MalformedAmount(value, f"symbol {parsed_symbol!r} does not match {symbol!r}")

    try:
        amount = Decimal(match.group("number"))
    except InvalidOperation:
        raise MalformedAmount(value, "amount is not a number")

    return TokenAmount(amount=amount, symbol=parsed_symbol, precision=precision)


def format_amount(amount: Union[Decimal, int], symbol: str, precision: int = 4) -> str:
    """Format an amount as a canonical asset string."""
    quantum = Decimal(1).scaleb(-precision)
    return f"{Decimal(amount).quantize(quantum):f} {symbol}"
