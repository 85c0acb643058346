import math
from typing import Any, Dict, List, Optional


def sample_value(sample: Dict[str, Any]) -> Optional[float]:
    """Extract the scalar from one instant-vector sample `{"metric": {...}, "value": [ts, "1.5"]}`.
    Returns None for missing, unparsable and non-finite values.
    """
    try:
        fv = float(sample.get("value", [None, None])[1])
    except (TypeError, ValueError, IndexError):
        return None
    if not math.isfinite(fv):
        return None
    return fv


def values_by_label(result: List[Dict[str, Any]], label: str) -> Dict[str, float]:
    """Reduce an instant-vector result to `{label value: scalar}`.

    All other labels are dropped here. Samples without the label or without a
    usable value are skipped, so their key stays absent rather than zero.
    """
    values: Dict[str, float] = {}
    for sample in result:
        key = sample.get("metric", {}).get(label)
        if not key:
            continue
        v = sample_value(sample)
        if v is None:
            continue
        values[key] = v
    return values
