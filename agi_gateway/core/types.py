"""Typed values produced by the call variable coercion pipeline."""

import re
from enum import Enum
from typing import Dict, Optional, Union

_LEADING_ZERO = re.compile(r"^-?0\d")
_NUMERIC = re.compile(r"^-?\d+(?:\.\d+)?$")


class NumericalString(str):
    """
    Numeric-looking text whose exact characters are significant.

    Dialed digits such as "007" must not lose their leading zeros, so the
    value stays a string while still converting to a number on request.
    """

    @staticmethod
    def starts_with_leading_zero(text: str) -> bool:
        return bool(_LEADING_ZERO.match(text))

    @property
    def is_numeric(self) -> bool:
        return bool(_NUMERIC.match(self))

    def to_number(self) -> Union[int, float]:
        if not self.is_numeric:
            raise ValueError(f"{str(self)!r} is not numeric")
        return float(self) if "." in self else int(self)

    def __int__(self) -> int:
        return int(str(self), 10)

    def __float__(self) -> float:
        return float(str(self))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"


class PhoneNumber(NumericalString):
    """An extension or dialed number kept exactly as Asterisk sent it."""

    @property
    def digits(self) -> str:
        return "".join(ch for ch in self if ch.isdigit())


class TypeOfNumber(Enum):
    """Q.931 type of number carried in the calling party information element."""
    UNKNOWN = "unknown"
    INTERNATIONAL = "international"
    NATIONAL = "national"
    NETWORK_SPECIFIC = "network_specific"
    SUBSCRIBER = "subscriber"
    ABBREVIATED_NUMBER = "abbreviated_number"
    RESERVED_FOR_EXTENSION = "reserved_for_extension"


# Code 5 is reserved by Q.931 and has no symbolic value.
Q931_TYPE_OF_NUMBER: Dict[int, Optional[TypeOfNumber]] = {
    0: TypeOfNumber.UNKNOWN,
    1: TypeOfNumber.INTERNATIONAL,
    2: TypeOfNumber.NATIONAL,
    3: TypeOfNumber.NETWORK_SPECIFIC,
    4: TypeOfNumber.SUBSCRIBER,
    6: TypeOfNumber.ABBREVIATED_NUMBER,
    7: TypeOfNumber.RESERVED_FOR_EXTENSION,
}
