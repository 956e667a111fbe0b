"""Atlas key/value tag lists."""

from typing import Any, Dict, List, Optional

# Label marking users minted by the temp-user manager.
TEMP_USER_LABEL = "temporary"


def tags_to_atlas(tags: Optional[Dict[str, Any]]) -> List[Dict[str, str]]:
    return [{"key": str(k), "value": str(v)} for k, v in sorted((tags or {}).items())]


def tags_from_atlas(tags: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    return {str(t.get("key")): str(t.get("value")) for t in (tags or []) if t.get("key") is not None}
