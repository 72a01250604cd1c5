"""
Sensitive field catalog.

Maps record field names to a field category and the transform applied when
that category is masked. Record kinds (deal, sme, investor, document) can
override the default rule for a field or add fields of their own.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from authz.exceptions import PolicyConfigurationError
from .policy import FieldCategory
from .transforms import TRANSFORMS


DEFAULT_OWNER_FIELDS: Tuple[str, ...] = ("userId", "id")


def validate_field_path(path: str) -> None:
    """
    Check a field name or single-level ``parent.child`` path.

    Raises:
        PolicyConfigurationError: If the path is empty, malformed or too deep
    """
    if not path or path.startswith(".") or path.endswith("."):
        raise PolicyConfigurationError(f"Invalid field path: {path!r}")
    if path.count(".") > 1:
        raise PolicyConfigurationError(f"Field path {path!r} nests more than one level")


@dataclass(frozen=True)
class FieldRule:
    """How one field is masked."""
    path: str
    category: FieldCategory
    transform: str
    marker: Optional[str] = None

    def __post_init__(self):
        validate_field_path(self.path)
        if self.transform not in TRANSFORMS:
            raise PolicyConfigurationError(
                f"Unknown transform {self.transform!r} for field {self.path}"
            )

    @property
    def segments(self) -> Tuple[str, ...]:
        return tuple(self.path.split("."))

    def apply(self, value: Any) -> Any:
        return TRANSFORMS[self.transform](value)

    @classmethod
    def from_config(cls, path: str, data: Any) -> "FieldRule":
        """
        Build a rule from its policy file entry.

        Args:
            path: Field name or ``parent.child`` path
            data: Mapping with ``category``, ``transform`` and optional ``marker``

        Raises:
            PolicyConfigurationError: If the entry is malformed
        """
        if not isinstance(data, Mapping):
            raise PolicyConfigurationError(
                f"Field rule for {path!r} must be a mapping, got {type(data).__name__}"
            )
        try:
            category = FieldCategory(data.get("category"))
        except ValueError:
            raise PolicyConfigurationError(
                f"Unknown field category {data.get('category')!r} for field {path}"
            )
        marker = data.get("marker")
        return cls(
            path=str(path),
            category=category,
            transform=str(data.get("transform", "")),
            marker=str(marker) if marker else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {"category": self.category.value, "transform": self.transform}
        if self.marker:
            result["marker"] = self.marker
        return result


class SensitiveFieldCatalog:
    """
    Default field rules plus per-kind overrides.

    A kind rule replaces the default rule for the same path; rule order is
    defaults first, then kind-only fields, each in declaration order.

    A kind may also name the fields identifying its owner (``createdBy``,
    ``sme.userId``); records of other kinds are owned through ``userId``
    or ``id``.
    """

    def __init__(
        self,
        default_rules: Iterable[FieldRule],
        kind_rules: Optional[Mapping[str, Iterable[FieldRule]]] = None,
        owner_fields: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self._owner_fields: Dict[str, Tuple[str, ...]] = {}
        for kind, paths in (owner_fields or {}).items():
            paths = tuple(str(p) for p in paths)
            if not paths:
                raise PolicyConfigurationError(f"Owner fields for kind {kind!r} must not be empty")
            for path in paths:
                validate_field_path(path)
            self._owner_fields[str(kind)] = paths

        self._defaults: Dict[str, FieldRule] = {}
        for rule in default_rules:
            if rule.path in self._defaults:
                raise PolicyConfigurationError(f"Duplicate field rule: {rule.path}")
            self._defaults[rule.path] = rule

        self._kinds: Dict[str, Dict[str, FieldRule]] = {}
        for kind, rules in (kind_rules or {}).items():
            overrides: Dict[str, FieldRule] = {}
            for rule in rules:
                if rule.path in overrides:
                    raise PolicyConfigurationError(
                        f"Duplicate field rule {rule.path} for kind {kind}"
                    )
                overrides[rule.path] = rule
            self._kinds[str(kind)] = overrides

        self._merged: Dict[Optional[str], Tuple[FieldRule, ...]] = {
            None: tuple(self._defaults.values())
        }
        for kind, overrides in self._kinds.items():
            merged = dict(self._defaults)
            merged.update(overrides)
            self._merged[kind] = tuple(merged.values())

    @classmethod
    def from_config(cls, data: Any) -> "SensitiveFieldCatalog":
        """Build the catalog from the ``sensitive_fields`` policy section."""
        if not isinstance(data, Mapping):
            raise PolicyConfigurationError("sensitive_fields must be a mapping")

        defaults = data.get("defaults") or {}
        kinds = data.get("kinds") or {}
        if not isinstance(defaults, Mapping) or not isinstance(kinds, Mapping):
            raise PolicyConfigurationError(
                "sensitive_fields.defaults and sensitive_fields.kinds must be mappings"
            )

        kind_rules: Dict[str, List[FieldRule]] = {}
        for kind, fields in kinds.items():
            if not isinstance(fields, Mapping):
                raise PolicyConfigurationError(f"Field rules for kind {kind!r} must be a mapping")
            kind_rules[str(kind)] = [FieldRule.from_config(p, d) for p, d in fields.items()]

        owner_fields = data.get("owner_fields") or {}
        if not isinstance(owner_fields, Mapping):
            raise PolicyConfigurationError("sensitive_fields.owner_fields must be a mapping")
        for kind, paths in owner_fields.items():
            if not isinstance(paths, list):
                raise PolicyConfigurationError(f"Owner fields for kind {kind!r} must be a list")

        return cls(
            [FieldRule.from_config(p, d) for p, d in defaults.items()],
            kind_rules,
            owner_fields,
        )

    @property
    def kinds(self) -> List[str]:
        return list(self._kinds)

    def rules_for(self, kind: Optional[str] = None) -> Tuple[FieldRule, ...]:
        """
        Rules that apply to a record of ``kind``.

        Unknown kinds get the default rules.
        """
        return self._merged.get(kind, self._merged[None])

    def owner_fields_for(self, kind: Optional[str] = None) -> Tuple[str, ...]:
        """Fields whose value identifies the owner of a record of ``kind``."""
        if kind is None:
            return DEFAULT_OWNER_FIELDS
        return self._owner_fields.get(kind, DEFAULT_OWNER_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "defaults": {path: rule.to_dict() for path, rule in self._defaults.items()},
            "kinds": {
                kind: {path: rule.to_dict() for path, rule in rules.items()}
                for kind, rules in self._kinds.items()
            },
            "owner_fields": {kind: list(paths) for kind, paths in self._owner_fields.items()},
        }
