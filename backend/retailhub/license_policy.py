"""
Typed views over the JSON policy columns stored on a license row.

`licenses.allowed_domains` and `license_templates.features` hold JSON arrays
of strings; `licenses.hardware_binding` holds a JSON object. All are decoded
here and nowhere else; services work with `HardwareBindingPolicy` and plain
lists.

Wire format of the binding object (camelCase, as issued to clients):

    {
        "hardwareId": "H1",               # optional hard pin
        "allowedHardwareIds": ["H1"],
        "allowedDomains": ["shop.example"],
        "maxHardwareBindings": 1,
        "strictMode": false
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from retailhub.validation import ValidationError


WILDCARD_DOMAIN = "*"


def _normalize_domain(domain: str) -> str:
    return domain.strip().lower()


def decode_string_list(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    value = json.loads(raw)
    if not isinstance(value, list):
        raise ValueError("expected a JSON array")
    return [str(item) for item in value]


def encode_string_list(items: list[str] | None) -> str | None:
    if items is None:
        return None
    return json.dumps(items)


def domain_allowed(allowed: list[str] | None, domain: str | None) -> bool:
    """An unset or empty list, or one containing "*", does not restrict."""
    if not allowed or WILDCARD_DOMAIN in allowed:
        return True
    if not domain:
        return False
    return _normalize_domain(domain) in {_normalize_domain(d) for d in allowed}


@dataclass
class HardwareBindingPolicy:
    hardware_id: str | None = None
    allowed_hardware_ids: list[str] = field(default_factory=list)
    allowed_domains: list[str] = field(default_factory=list)
    max_hardware_bindings: int = 1
    strict_mode: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "HardwareBindingPolicy":
        if not isinstance(data, dict):
            raise ValidationError("hardwareBinding must be an object")

        def pick(camel: str, snake: str, default=None):
            if camel in data:
                return data[camel]
            return data.get(snake, default)

        hardware_id = pick("hardwareId", "hardware_id")
        allowed_hardware_ids = pick("allowedHardwareIds", "allowed_hardware_ids", []) or []
        allowed_domains = pick("allowedDomains", "allowed_domains", []) or []
        max_bindings = pick("maxHardwareBindings", "max_hardware_bindings", 1)
        strict_mode = pick("strictMode", "strict_mode", False)

        if hardware_id is not None and not isinstance(hardware_id, str):
            raise ValidationError("hardwareId must be a string")
        for name, values in (("allowedHardwareIds", allowed_hardware_ids), ("allowedDomains", allowed_domains)):
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise ValidationError(f"{name} must be a list of strings")
        if isinstance(max_bindings, bool) or not isinstance(max_bindings, int) or max_bindings < 1:
            raise ValidationError("maxHardwareBindings must be a positive integer")
        if not isinstance(strict_mode, bool):
            raise ValidationError("strictMode must be a boolean")

        return cls(
            hardware_id=hardware_id or None,
            allowed_hardware_ids=list(allowed_hardware_ids),
            allowed_domains=list(allowed_domains),
            max_hardware_bindings=max_bindings,
            strict_mode=strict_mode,
        )

    @classmethod
    def from_json(cls, raw: str | None) -> "HardwareBindingPolicy | None":
        if not raw:
            return None
        return cls.from_dict(json.loads(raw))

    def to_dict(self) -> dict:
        data = {
            "allowedHardwareIds": list(self.allowed_hardware_ids),
            "maxHardwareBindings": self.max_hardware_bindings,
            "allowedDomains": list(self.allowed_domains),
            "strictMode": self.strict_mode,
        }
        if self.hardware_id:
            data["hardwareId"] = self.hardware_id
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def allows_hardware(self, hardware_id: str | None) -> bool:
        if self.hardware_id and hardware_id != self.hardware_id:
            return False
        if self.strict_mode and self.allowed_hardware_ids:
            return hardware_id in self.allowed_hardware_ids
        return True

    def allows_domain(self, domain: str | None) -> bool:
        if self.strict_mode:
            return domain_allowed(self.allowed_domains, domain)
        return True
