import json
from typing import Any, Dict, List


def encode_projections(projections: List[Dict[str, Any]]) -> bytes:
    """Serialize projections as one compact JSON array (UTF-8)."""
    return json.dumps(projections, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
