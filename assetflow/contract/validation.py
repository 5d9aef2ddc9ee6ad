"""
Input Validation

Pure syntactic checks on operation inputs. Nothing here reads the ledger or
the caller identity; every function either returns the accepted value or
raises ValidationError naming the offending field.

Unlike general-purpose sanitizers, values are NOT trimmed or rewritten: the
engine stores exactly what was validated so that independent re-executions
persist identical bytes.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from assetflow.contract.errors import ValidationError


@dataclass(frozen=True)
class Limits:
    """Length bounds applied to free-form inputs."""
    asset_id_max_length: int = 64
    description_max_length: int = 1024
    reason_max_length: int = 500


DEFAULT_LIMITS = Limits()


class Validators:
    """Collection of input validators."""

    ASSET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

    @classmethod
    def validate_text(
        cls,
        value: Any,
        field_name: str,
        max_length: int,
        min_length: int = 1,
    ) -> str:
        """Validate a free-form string: type, non-blank, length bound."""
        if not isinstance(value, str):
            raise ValidationError(field_name, f"expected string, got {type(value).__name__}")
        if not value.strip():
            raise ValidationError(field_name, "cannot be empty")
        if len(value) < min_length:
            raise ValidationError(field_name, f"too short (min {min_length} chars)")
        if len(value) > max_length:
            raise ValidationError(field_name, f"exceeds maximum length of {max_length} characters")
        if "\x00" in value:
            raise ValidationError(field_name, "contains NUL byte")
        cls.require_utf8(value, field_name)
        return value

    @staticmethod
    def require_utf8(value: str, field_name: str) -> None:
        """Lone surrogates decode from JSON escapes but cannot be stored."""
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as e:
            raise ValidationError(field_name, "not valid UTF-8 text") from e

    @classmethod
    def validate_asset_id(cls, value: Any, limits: Limits = DEFAULT_LIMITS) -> str:
        asset_id = cls.validate_text(value, "asset_id", limits.asset_id_max_length)
        if not cls.ASSET_ID_PATTERN.match(asset_id):
            raise ValidationError(
                "asset_id",
                "contains invalid characters. Only alphanumeric, underscore, and hyphen allowed",
            )
        return asset_id

    @classmethod
    def validate_description(cls, value: Any, limits: Limits = DEFAULT_LIMITS) -> str:
        return cls.validate_text(value, "description", limits.description_max_length)

    @classmethod
    def validate_reason(cls, value: Any, limits: Limits = DEFAULT_LIMITS) -> str:
        return cls.validate_text(value, "reason", limits.reason_max_length)

    @classmethod
    def validate_status_name(cls, value: Any) -> str:
        from assetflow.contract.model import AssetStatus

        if not isinstance(value, str) or value not in AssetStatus.__members__:
            allowed = ", ".join(AssetStatus.__members__)
            raise ValidationError("status", f"must be one of: {allowed}")
        return value

    @classmethod
    def validate_fingerprint(cls, value: Any) -> str:
        return cls.validate_text(value, "owner_fingerprint", max_length=256)


def parse_private_payload(raw: Optional[bytes]) -> Optional[Dict[str, Any]]:
    """Decode and shape-check the confidential payload from the transient map.

    Returns None when no payload was supplied. The returned dict contains only
    ``confidential_notes`` and, if present, ``internal_value``; unknown keys in
    the payload are dropped.
    """
    if raw is None or len(raw) == 0:
        return None

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("private_data", f"payload is not valid JSON: {e.__class__.__name__}") from e

    if not isinstance(payload, Mapping):
        raise ValidationError("private_data", "payload must be a JSON object")

    notes = payload.get("confidentialNotes", payload.get("confidential_notes"))
    if not isinstance(notes, str) or not notes.strip():
        raise ValidationError("private_data", "must include confidentialNotes (non-empty string)")
    Validators.require_utf8(notes, "private_data")

    shaped: Dict[str, Any] = {"confidential_notes": notes}

    value = payload.get("internalValue", payload.get("internal_value"))
    if value is not None:
        # bool is an int subclass; JSON true is not a number
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("private_data", "internalValue must be a number")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValidationError("private_data", "internalValue must be finite")
        shaped["internal_value"] = value

    return shaped
