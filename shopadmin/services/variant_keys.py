"""
Variant key resolution

Turns (product_id, variant_id?, label?, addressing mode) into the single
field used to match a variant plus the cache-key suffix for that read.

Policy:
- label mode + label      -> match label,     suffix ":label:<label>"
- label mode, no label    -> match variantId, suffix ":<variantId>"
- legacy mode             -> match variantId, suffix ":<variantId>";
                             a supplied label is dropped before the key is built
- nothing usable          -> AddressingError

Cache keys:
    inventory:product:<productId>:label:<label>
    inventory:product:<productId>:<variantId>
"""
import enum
from dataclasses import dataclass
from typing import Dict, List, Optional

from shopadmin.core.exceptions import AddressingError
from shopadmin.core.feature_flags import AddressingMode

INVENTORY_CACHE_PREFIX = "inventory:product:"
LABEL_SUFFIX_PREFIX = ":label:"


class MatchField(str, enum.Enum):
    VARIANT_ID = "variantId"
    LABEL = "label"


@dataclass(frozen=True)
class VariantKey:
    """Canonical lookup key for a single variant read or write."""
    match_field: MatchField
    match_value: str
    cache_suffix: str

    @property
    def criteria(self) -> Dict[str, str]:
        """Sub-entry match criteria, exactly one field."""
        return {f"variants.{self.match_field.value}": self.match_value}

    @property
    def is_label(self) -> bool:
        return self.match_field is MatchField.LABEL


def _present(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


def label_suffix(label: str) -> str:
    return f"{LABEL_SUFFIX_PREFIX}{label}"


def variant_id_suffix(variant_id: str) -> str:
    return f":{variant_id}"


def resolve_variant_key(
    product_id: str,
    variant_id: Optional[str] = None,
    label: Optional[str] = None,
    mode: AddressingMode = AddressingMode.LEGACY,
) -> VariantKey:
    """
    Resolve the canonical key for one call.

    Empty strings count as absent. In legacy mode the label never reaches the
    key, so it cannot leak into match criteria or the cache key.

    Raises:
        AddressingError: no product id, or no identifier usable in this mode
    """
    mode = AddressingMode(mode)
    product_id = _present(product_id)
    variant_id = _present(variant_id)
    label = _present(label)

    if product_id is None:
        raise AddressingError(
            "Product id is required to address a variant",
            variant_id=variant_id,
            label=label,
            label_mode=mode is AddressingMode.LABEL,
        )

    if mode is AddressingMode.LEGACY:
        label = None

    if label is not None:
        return VariantKey(
            match_field=MatchField.LABEL,
            match_value=label,
            cache_suffix=label_suffix(label),
        )

    if variant_id is None:
        if mode is AddressingMode.LABEL:
            message = "Label mode requires a variant label or a variant id"
        else:
            message = "Legacy addressing requires a variant id"
        raise AddressingError(
            message,
            product_id=product_id,
            label_mode=mode is AddressingMode.LABEL,
        )

    return VariantKey(
        match_field=MatchField.VARIANT_ID,
        match_value=variant_id,
        cache_suffix=variant_id_suffix(variant_id),
    )


def inventory_cache_key(product_id: str, key: VariantKey) -> str:
    return f"{INVENTORY_CACHE_PREFIX}{product_id}{key.cache_suffix}"


def variant_cache_keys(
    product_id: str,
    variant_id: Optional[str] = None,
    label: Optional[str] = None,
) -> List[str]:
    """
    Full cache key set for one variant, both addressing shapes.

    Mutations invalidate this whole set because the next reader may be in the
    other addressing mode.
    """
    keys = []
    variant_id = _present(variant_id)
    label = _present(label)
    if variant_id is not None:
        keys.append(f"{INVENTORY_CACHE_PREFIX}{product_id}{variant_id_suffix(variant_id)}")
    if label is not None:
        keys.append(f"{INVENTORY_CACHE_PREFIX}{product_id}{label_suffix(label)}")
    return keys
