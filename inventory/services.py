# services.py - catalog, organizational-unit and stock operations used by the inspection workflow
import calendar
import logging
import re
from decimal import Decimal, InvalidOperation

from django.db.models import Q

from inspections.exceptions import NotFoundError, ValidationError

from .models import (
    Category, DepreciationMethod, InstanceStatus, Item, ItemInstance, Location,
    StockEntry, TrackingType
)

logger = logging.getLogger(__name__)


# ==================== ORGANIZATIONAL UNITS ====================
def get_location(location_id):
    try:
        return Location.objects.get(pk=location_id)
    except (Location.DoesNotExist, ValueError, TypeError):
        raise NotFoundError('Location', location_id)


def is_root_unit(location):
    """Root organizational unit: a location with no parent."""
    return location.parent_location_id is None


def department_display_name(location):
    if location is None:
        return ''
    return location.name


def resolve_receiving_store(certificate, item):
    """
    Store receiving stock for an approved certificate line.
    Department main store first, then the main store of the item's default location.
    """
    store = certificate.department.get_main_store() if certificate.department_id else None
    if store is None and item.default_location_id:
        store = item.default_location.get_main_store()
    if store is None:
        raise ValidationError(
            {'department': f"No main store found for {department_display_name(certificate.department)}"}
        )
    return store


# ==================== CATALOG ====================
def get_item(item_id):
    try:
        return Item.objects.select_related('category__parent_category').get(pk=item_id)
    except (Item.DoesNotExist, ValueError, TypeError):
        raise NotFoundError('Item', item_id)


def get_category(category_id):
    try:
        return Category.objects.select_related('parent_category').get(pk=category_id)
    except (Category.DoesNotExist, ValueError, TypeError):
        raise NotFoundError('Category', category_id)


def search_items(query=None, queryset=None):
    """Active catalog items whose name, code or category matches `query`."""
    items = queryset if queryset is not None else Item.objects.all()
    items = items.filter(is_active=True).select_related('category__parent_category')
    if query:
        items = items.filter(
            Q(name__icontains=query) |
            Q(code__icontains=query) |
            Q(category__name__icontains=query)
        )
    return items


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def create_item(draft, user=None, certificate=None):
    """
    Create a catalog item under a sub-category.

    `certificate` tags the item as created for that certificate so rejecting
    it can remove the item again.
    """
    errors = {}
    for field in ('name', 'category', 'acct_unit'):
        if _blank(draft.get(field)):
            errors[field] = 'This field is required.'

    category = None
    if 'category' not in errors:
        category = get_category(draft['category'])
        if not category.is_sub_category:
            errors['category'] = "Items must be created under a sub-category, not a broader category"

    default_location = None
    location_id = draft.get('default_location')
    if _blank(location_id):
        if certificate is not None:
            default_location = certificate.department
        else:
            errors['default_location'] = 'This field is required.'
    else:
        default_location = get_location(location_id)
    if default_location is not None and not default_location.is_standalone:
        errors['default_location'] = "Items must belong to a standalone location"

    shelf_life_days = draft.get('shelf_life_days')
    if not _blank(shelf_life_days):
        try:
            shelf_life_days = int(shelf_life_days)
            if shelf_life_days < 0:
                raise ValueError(shelf_life_days)
        except (TypeError, ValueError):
            errors['shelf_life_days'] = "Enter a non-negative whole number."
    else:
        shelf_life_days = None

    if errors:
        raise ValidationError(errors, message='Invalid item data')

    item = Item.objects.create(
        name=draft['name'].strip(),
        code=(draft.get('code') or '').strip(),
        category=category,
        description=draft.get('description') or None,
        acct_unit=draft['acct_unit'],
        specifications=draft.get('specifications') or None,
        default_location=default_location,
        shelf_life_days=shelf_life_days,
        created_by_certificate=certificate,
        created_by=user if user is not None and user.is_authenticated else None,
    )
    logger.info("Created catalog item %s under %s", item.code, category.code)
    return item


def generate_category_code(name):
    prefix = re.sub(r'[^A-Z0-9]', '', name.upper())[:8] or 'CAT'
    code = prefix
    seq = 1
    while Category.objects.filter(code=code).exists():
        seq += 1
        code = f"{prefix}{seq}"
    return code


def create_sub_category(draft, user=None, certificate=None):
    """
    Create a sub-category under a broader category.

    Tracking type comes from the parent. Depreciation settings are kept only
    for INDIVIDUAL (fixed asset) categories.
    """
    errors = {}
    name = (draft.get('name') or '').strip()
    if not name:
        errors['name'] = 'This field is required.'
    elif Category.objects.filter(name__iexact=name).exists():
        errors['name'] = f"A category named '{name}' already exists."

    parent = None
    if _blank(draft.get('parent_category_id')):
        errors['parent_category_id'] = 'This field is required.'
    else:
        parent = get_category(draft['parent_category_id'])
        if not parent.is_broader_category:
            errors['parent_category_id'] = "Sub-categories can only be created under broader categories"

    if errors:
        raise ValidationError(errors, message='Invalid sub-category data')

    depreciation_rate = 0
    depreciation_method = None
    if parent.tracking_type == TrackingType.INDIVIDUAL:
        depreciation_method = draft.get('depreciation_method') or DepreciationMethod.WDV
        try:
            depreciation_rate = Decimal(str(draft.get('depreciation_rate') or 0))
        except InvalidOperation:
            depreciation_rate = None
        if depreciation_rate is None or not Decimal('0') <= depreciation_rate <= Decimal('100'):
            errors['depreciation_rate'] = "Enter a percentage between 0 and 100."
        if depreciation_method not in DepreciationMethod.values:
            errors['depreciation_method'] = f"Must be one of {', '.join(DepreciationMethod.values)}"
        if errors:
            raise ValidationError(errors, message='Invalid sub-category data')

    category = Category.objects.create(
        name=name,
        code=(draft.get('code') or '').strip() or generate_category_code(name),
        description=draft.get('description') or None,
        parent_category=parent,
        depreciation_rate=depreciation_rate,
        depreciation_method=depreciation_method,
        created_by_certificate=certificate,
        created_by=user if user is not None and user.is_authenticated else None,
    )
    logger.info("Created sub-category %s under %s", category.code, parent.code)
    return category


# ==================== STOCK ====================
def add_months(start, months):
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def create_stock_entry(item, location, quantity, certificate, inspection_item=None, user=None):
    """
    Record a completed stock receipt for an approved inspection line.

    INDIVIDUAL items also get one ItemInstance (with QR code) per unit.
    Batch data from the line is copied onto the receipt for BATCH and BULK items.
    """
    actor = user if user is not None and user.is_authenticated else None
    tracking_type = item.tracking_type

    entry = StockEntry(
        entry_type=StockEntry.RECEIPT,
        to_location=location,
        item=item,
        quantity=quantity,
        inspection_certificate=certificate,
        inspection_item=inspection_item,
        status=StockEntry.COMPLETED,
        purpose=f"Receipt from Inspection {certificate.certificate_no}",
        remarks=f"Contractor: {certificate.contractor_name}",
        created_by=actor,
    )
    if inspection_item is not None and tracking_type in (TrackingType.BATCH, TrackingType.BULK):
        entry.batch_number = inspection_item.batch_number
        entry.manufacture_date = inspection_item.manufacture_date
        entry.expiry_date = inspection_item.expiry_date
    entry.save()

    if tracking_type == TrackingType.INDIVIDUAL:
        purchase_date = certificate.date
        warranty_expiry = None
        if inspection_item is not None and inspection_item.warranty_months and purchase_date:
            warranty_expiry = add_months(purchase_date, inspection_item.warranty_months)

        for _ in range(quantity):
            ItemInstance.objects.create(
                item=item,
                stock_entry=entry,
                inspection_certificate=certificate,
                current_status=InstanceStatus.IN_STORE,
                current_location=location,
                brand=inspection_item.brand if inspection_item else None,
                model=inspection_item.model if inspection_item else None,
                serial_number=inspection_item.serial_number if inspection_item else None,
                purchase_date=purchase_date,
                purchase_value=inspection_item.unit_price if inspection_item else None,
                warranty_expiry=warranty_expiry,
                created_by=actor,
            )

    item.update_total_quantity()
    logger.info(
        "Stock receipt %s: %s x %s into %s",
        entry.entry_number, quantity, item.code, location.code
    )
    return entry
