from __future__ import annotations

import copy
from typing import Any, Dict, List

import jsonpatch

from midifx.validator import ValidationError, canonicalize, validate_preset


def apply_patch(doc: Dict[str, Any], ops: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Apply an RFC 6902 JSON Patch ops array to a deep copy of doc.

    Raises jsonpatch.JsonPatchException / JsonPointerException on bad ops.
    """
    base = copy.deepcopy(doc)
    return jsonpatch.JsonPatch(ops).apply(base, in_place=False)


def patch_preset(doc: Dict[str, Any], ops: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Patch a preset and return the canonical result; invalid results raise ValidationError."""
    patched = apply_patch(doc, ops)
    errors = validate_preset(patched)
    if errors:
        raise ValidationError(errors)
    return canonicalize(patched)
