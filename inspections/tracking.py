"""
Tracking-type rules for linking an inspection line to a catalog item.

One table drives validation (which attributes must be supplied before a line
counts as linked) and any form that renders those attributes.
"""
from datetime import date, datetime, timedelta

from inventory.models import TrackingType

from .exceptions import ValidationError


TRACKING_RULES = {
    TrackingType.BATCH: {
        'required': frozenset({'batch_number', 'expiry_date', 'manufacture_date', 'manufacturer'}),
        'optional': frozenset({'brand', 'shelf_life_days'}),
    },
    TrackingType.BULK: {
        'required': frozenset({'batch_number', 'manufacturer'}),
        'optional': frozenset({'brand', 'minimum_stock_level', 'reorder_level'}),
    },
    TrackingType.INDIVIDUAL: {
        'required': frozenset({'brand', 'model'}),
        'optional': frozenset({'manufacturer', 'serial_number', 'warranty_months'}),
    },
}

# Every tracking attribute an inspection line can carry
TRACKING_ATTRIBUTE_FIELDS = (
    'batch_number',
    'manufacture_date',
    'expiry_date',
    'shelf_life_days',
    'manufacturer',
    'brand',
    'model',
    'serial_number',
    'warranty_months',
    'minimum_stock_level',
    'reorder_level',
)

DATE_FIELDS = frozenset({'manufacture_date', 'expiry_date'})
INTEGER_FIELDS = frozenset({'shelf_life_days', 'warranty_months', 'minimum_stock_level', 'reorder_level'})

# Editable after linking without re-linking
STOCK_SETTING_FIELDS = frozenset({'minimum_stock_level', 'reorder_level', 'warranty_months'})


def _rules(tracking_type):
    try:
        return TRACKING_RULES[tracking_type]
    except KeyError:
        raise ValidationError(
            {'tracking_type': f"Unknown tracking type: {tracking_type!r}"}
        )


def required_fields_for(tracking_type, accepted_quantity):
    """Rejected-only lines need no tracking metadata."""
    if not accepted_quantity:
        return frozenset()
    return _rules(tracking_type)['required']


def allowed_fields_for(tracking_type):
    rules = _rules(tracking_type)
    return rules['required'] | rules['optional']


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def missing_fields(tracking_type, accepted_quantity, attributes):
    """Every required attribute that is absent or blank, sorted."""
    return sorted(
        name for name in required_fields_for(tracking_type, accepted_quantity)
        if _is_blank(attributes.get(name))
    )


def derive_expiry_date(manufacture_date, shelf_life_days):
    if manufacture_date is None or shelf_life_days is None:
        return None
    return manufacture_date + timedelta(days=int(shelf_life_days))


def _coerce_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def _coerce_int(value):
    if isinstance(value, bool):
        raise ValueError(value)
    number = int(value)
    if number < 0:
        raise ValueError(value)
    return number


def resolve_tracking_attributes(tracking_type, attributes, shelf_life_days=None):
    """
    Normalize raw tracking attributes for one tracking type.

    Fields outside the tracking type are dropped, dates and counts are
    coerced, and a missing expiry_date is derived from manufacture_date plus
    the shelf life (the line's own value first, then the catalog default).
    Returns a dict holding every tracking attribute, with disallowed ones set
    to None so they get cleared on the line.
    """
    allowed = allowed_fields_for(tracking_type)
    resolved = {name: None for name in TRACKING_ATTRIBUTE_FIELDS}
    errors = {}

    for name in allowed:
        value = attributes.get(name)
        if _is_blank(value):
            continue
        try:
            if name in DATE_FIELDS:
                value = _coerce_date(value)
            elif name in INTEGER_FIELDS:
                value = _coerce_int(value)
            else:
                value = str(value).strip()
        except (TypeError, ValueError):
            if name in DATE_FIELDS:
                errors[name] = "Enter a valid date (YYYY-MM-DD)."
            else:
                errors[name] = "Enter a non-negative whole number."
            continue
        resolved[name] = value

    if errors:
        raise ValidationError(errors, message='Invalid tracking attributes')

    if tracking_type == TrackingType.BATCH and resolved['expiry_date'] is None:
        resolved['expiry_date'] = derive_expiry_date(
            resolved['manufacture_date'],
            resolved['shelf_life_days'] if resolved['shelf_life_days'] is not None else shelf_life_days,
        )

    return resolved


def validate_link_attributes(tracking_type, accepted_quantity, attributes, shelf_life_days=None):
    """Resolve attributes and fail with every missing required field at once."""
    resolved = resolve_tracking_attributes(tracking_type, attributes, shelf_life_days)
    missing = missing_fields(tracking_type, accepted_quantity, resolved)
    if missing:
        raise ValidationError(
            missing,
            message=f"Missing required fields for {tracking_type} item: {', '.join(missing)}"
        )
    return resolved
