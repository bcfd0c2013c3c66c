"""
Helpers for the runtime field payload.

A field map associates a field name with either a scalar (str, int, float,
bool), an ordered list of records (each a mapping of sub-field -> scalar),
or None. The request models validate that shape; the fillers below only need
to tell the two variants apart and turn scalars into display text.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Union

Scalar = Union[str, int, float, bool]
Record = Dict[str, Optional[Scalar]]
FieldValue = Union[Scalar, List[Record], None]
FieldMap = Dict[str, FieldValue]


def is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def is_record_list(value: Any) -> bool:
    return isinstance(value, list)


def stringify(value: Any) -> str:
    """Render a scalar the way the webhook callers expect to read it back.

    Booleans are lowercase and integral floats drop their trailing ``.0``,
    so ``1.0`` posted as JSON renders as ``"1"``.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)
