"""
Inline arithmetic for amount fields.

Lets a user type "50+30-10" into an amount box and get "70" back.
Only addition and subtraction of plain decimal numbers is supported.
Anything else is handed back unchanged (trimmed) so the form can show
it and let the schema validator complain.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_ALLOWED = re.compile(r"^[\d\s+\-.]+$")
_DOUBLE_OPERATOR = re.compile(r"[+\-]{2,}")
_TOKEN = re.compile(r"[+\-]|[^+\-]+")

_CENT = Decimal("0.01")


def calculate_amount(text: str) -> str:
    """
    Evaluate a simple sum/difference expression.

    Examples:
        calculate_amount("50+30-10")  -> "70"
        calculate_amount("10.5 + 2")  -> "12.5"
        calculate_amount("abc")       -> "abc"
        calculate_amount("50+")       -> "50+"
    """
    trimmed = text.strip()

    # Plain numbers and empty input pass straight through
    if not trimmed or not re.search(r"[+\-]", trimmed):
        return trimmed

    if not _ALLOWED.match(trimmed):
        return trimmed
    if (
        _DOUBLE_OPERATOR.search(trimmed)
        or trimmed[0] in "+-"
        or trimmed[-1] in "+-"
    ):
        return trimmed

    tokens = [t.strip() for t in _TOKEN.findall(trimmed)]

    try:
        result = Decimal(tokens[0])
        for operator, operand in zip(tokens[1::2], tokens[2::2]):
            value = Decimal(operand)
            result = result + value if operator == "+" else result - value
    except InvalidOperation:
        return trimmed

    # Two decimals, trailing zeros dropped: 12.50 -> 12.5, 70.00 -> 70
    rendered = f"{result.quantize(_CENT, rounding=ROUND_HALF_UP):.2f}"
    return rendered.rstrip("0").rstrip(".")
