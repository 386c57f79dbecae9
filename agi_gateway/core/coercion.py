"""
Call variable coercion.

This module turns the raw AGI header mapping into typed call variables. It
handles:
- AGI key prefix removal and whitespace trimming
- Typed values (phone number, numerical strings, numbers, booleans, null)
- Request URI parsing and query string decomposition
- Query parameter overrides, context name normalization
- Q.931 type of number lookup

Stages run in COERCION_ORDER. Later stages read what earlier ones produced,
so the order must not change. Each stage returns a new mapping.
"""

import re
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import SplitResult, urlsplit

from agi_gateway.core.types import NumericalString, PhoneNumber, Q931_TYPE_OF_NUMBER, TypeOfNumber
from agi_gateway.errors import CoercionError

Variables = Dict[str, Any]

AGI_KEY_PREFIX = re.compile(r"^(agi_)?(.+)$", re.DOTALL)
NUMERIC_VALUE = re.compile(r"^-?\d+(?:(\.)\d+)?$")
_URI_FORBIDDEN = re.compile(r"[\s\x00-\x1f\x7f]")

UNIQUEID_KEY = "uniqueid"
TYPE_OF_NUMBER_SOURCE_KEY = "callington"
TYPE_OF_NUMBER_KEY = "type_of_calling_number"
# Keys the pipeline itself derives; query parameters never override them
DERIVED_KEYS = frozenset({"request", "query", TYPE_OF_NUMBER_KEY})


def symbolize(key: Any) -> str:
    """Canonical form of a variable name."""
    return str(key).strip()


def _is_plain_text(value: Any) -> bool:
    # Typed strings (phone numbers, numerical strings) were coerced already
    return type(value) is str


def remove_agi_prefixes_from_keys_and_strip_whitespace(variables: Mapping[Any, Any]) -> Variables:
    new_variables = {}
    for key, value in variables.items():
        match = AGI_KEY_PREFIX.match(key) if isinstance(key, str) else None
        if match:
            key = match.group(2)
        if _is_plain_text(value):
            value = value.strip()
        new_variables[key] = value
    return new_variables


def coerce_keys_into_symbols(variables: Mapping[Any, Any]) -> Variables:
    return {symbolize(key): value for key, value in variables.items()}


def coerce_extension_into_phone_number_object(variables: Variables) -> Variables:
    new_variables = dict(variables)
    extension = new_variables.get("extension")
    if extension is not None and not isinstance(extension, PhoneNumber):
        new_variables["extension"] = PhoneNumber(extension)
    return new_variables


def coerce_numerical_values_to_numerics(variables: Variables) -> Variables:
    """
    Convert numeric-looking text into numbers.

    Text with a leading zero becomes a NumericalString so the digits survive;
    the uniqueid keeps its wire text since it is an identifier, not a number.
    """
    new_variables = {}
    for key, value in variables.items():
        match = NUMERIC_VALUE.match(value) if _is_plain_text(value) else None
        if match is None or key == UNIQUEID_KEY:
            new_variables[key] = value
        elif NumericalString.starts_with_leading_zero(value):
            new_variables[key] = NumericalString(value)
        elif match.group(1):
            new_variables[key] = float(value)
        else:
            new_variables[key] = int(value)
    return new_variables


def replace_unknown_values_with_nil(variables: Variables) -> Variables:
    return {
        key: None if _is_plain_text(value) and value == "unknown" else value
        for key, value in variables.items()
    }


def replace_yes_no_answers_with_booleans(variables: Variables) -> Variables:
    answers = {"yes": True, "no": False}
    return {
        key: answers[value] if _is_plain_text(value) and value in answers else value
        for key, value in variables.items()
    }


def parse_uri(key: str, text: str) -> SplitResult:
    if _URI_FORBIDDEN.search(text):
        raise CoercionError(key, text, "URI contains whitespace or control characters")
    try:
        uri = urlsplit(text)
        uri.port  # validates the port component
    except ValueError as e:
        raise CoercionError(key, text, str(e)) from e
    return uri


def coerce_request_into_uri_object(variables: Variables) -> Variables:
    new_variables = dict(variables)
    request = new_variables.get("request")
    if request is not None and not isinstance(request, SplitResult):
        new_variables["request"] = parse_uri("request", str(request))
    return new_variables


def decompose_query_string(query: str) -> Dict[str, str]:
    """Split ``a=1&b=2`` on '&' and then on the first '=' of each segment."""
    params = {}
    for segment in query.split("&"):
        if not segment:
            continue
        name, _, value = segment.partition("=")
        params[name] = value
    return params


def decompose_uri_query_into_hash(variables: Variables) -> Variables:
    new_variables = dict(variables)
    request = new_variables.get("request")
    if isinstance(request, SplitResult) and request.query:
        new_variables["query"] = decompose_query_string(request.query)
    else:
        new_variables["query"] = {}
    return new_variables


def override_variables_with_query_params(variables: Variables) -> Variables:
    """
    Merge query parameters into the top-level variables.

    Parameter names get the same prefix removal as header keys. Keys the
    pipeline derives (``request``, ``query`` and the type of number) are
    never overridden.
    """
    new_variables = dict(variables)
    for key, value in (variables.get("query") or {}).items():
        name = symbolize(key)
        match = AGI_KEY_PREFIX.match(name)
        if match:
            name = match.group(2)
        if name in DERIVED_KEYS:
            continue
        new_variables[name] = value
    return new_variables


def remove_dashes_from_context_name(variables: Variables) -> Variables:
    context = variables.get("context")
    if not isinstance(context, str):
        return dict(variables)
    new_variables = dict(variables)
    new_variables["context"] = context.replace("-", "_")
    return new_variables


def coerce_type_of_number_into_symbol(
    variables: Variables,
    table: Mapping[int, Optional[TypeOfNumber]] = Q931_TYPE_OF_NUMBER,
) -> Variables:
    if TYPE_OF_NUMBER_SOURCE_KEY not in variables:
        return dict(variables)
    new_variables = dict(variables)
    raw_code = new_variables.pop(TYPE_OF_NUMBER_SOURCE_KEY)
    try:
        code = 0 if raw_code is None else int(raw_code)
    except (TypeError, ValueError) as e:
        raise CoercionError(TYPE_OF_NUMBER_SOURCE_KEY, raw_code, "type of number must be an integer code") from e
    new_variables[TYPE_OF_NUMBER_KEY] = table.get(code)
    return new_variables


COERCION_ORDER: List[Callable[[Variables], Variables]] = [
    remove_agi_prefixes_from_keys_and_strip_whitespace,
    coerce_keys_into_symbols,
    coerce_extension_into_phone_number_object,
    coerce_numerical_values_to_numerics,
    replace_unknown_values_with_nil,
    replace_yes_no_answers_with_booleans,
    coerce_request_into_uri_object,
    decompose_uri_query_into_hash,
    override_variables_with_query_params,
    remove_dashes_from_context_name,
    coerce_type_of_number_into_symbol,
]


def coerce_variables(
    variables: Mapping[str, Any],
    type_of_number_table: Mapping[int, Optional[TypeOfNumber]] = Q931_TYPE_OF_NUMBER,
) -> Variables:
    """
    Run every coercion stage over the raw header mapping.

    Args:
        variables: Raw ``key -> value`` pairs read from the AGI header block
        type_of_number_table: Q.931 code table used by the last stage

    Returns:
        Typed call variables

    Raises:
        CoercionError: If a value does not have the shape a stage requires
    """
    stages = COERCION_ORDER[:-1] + [partial(coerce_type_of_number_into_symbol, table=type_of_number_table)]
    coerced = dict(variables)
    for stage in stages:
        coerced = stage(coerced)
    return coerced
