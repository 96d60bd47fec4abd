"""
Stage state machine for inspection certificates.

INITIATED -> STOCK_DETAILS -> CENTRAL_REGISTER -> AUDIT_REVIEW -> COMPLETED,
with REJECTED reachable from any non-terminal stage. Root departments use the
three-stage flow and skip STOCK_DETAILS.

Every mutating operation runs in one transaction with the certificate row
locked, so validation, line updates, the stage change and any stock or
cleanup side effect commit together or not at all.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from inventory import services
from inventory.models import Location
from user_management.models import UserActivity

from .conf import workflow_setting
from .exceptions import ConflictError, LinkingIncompleteError, NotFoundError, ValidationError
from .linking import accepted_lines, linking_examples, linking_summary
from .models import (
    InspectionCertificate, InspectionItem, InspectionStage, WorkflowType
)
from .tracking import TRACKING_ATTRIBUTE_FIELDS

logger = logging.getLogger(__name__)


HEADER_FIELDS = (
    'date',
    'contract_no',
    'contract_date',
    'contractor_name',
    'contractor_address',
    'consignee_name',
    'consignee_designation',
    'department',
    'indenter',
    'indent_no',
    'date_of_delivery',
    'delivery_type',
    'inspected_by',
    'date_of_inspection',
    'remarks',
)

REQUIRED_HEADER_FIELDS = (
    'date',
    'department',
    'contract_no',
    'contractor_name',
    'consignee_name',
    'consignee_designation',
    'indenter',
    'indent_no',
)

ITEM_BASIC_FIELDS = (
    'item_description',
    'specifications',
    'unit',
    'remarks',
    'tendered_quantity',
    'delivered_quantity',
    'accepted_quantity',
    'rejected_quantity',
    'unit_price',
) + TRACKING_ATTRIBUTE_FIELDS

STOCK_REGISTER_FIELDS = ('stock_register_no', 'stock_register_page_no', 'stock_entry_date')
CENTRAL_REGISTER_FIELDS = ('central_register_no', 'central_register_page_no')

# Header and line fields editable while the certificate sits in each stage
EDITABLE_HEADER_FIELDS = {
    InspectionStage.INITIATED: frozenset(HEADER_FIELDS),
    InspectionStage.STOCK_DETAILS: frozenset(),
    InspectionStage.CENTRAL_REGISTER: frozenset(
        {'central_store_entry_date', 'consignee_name', 'consignee_designation'}
    ),
    InspectionStage.AUDIT_REVIEW: frozenset({'finance_check_date'}),
}

EDITABLE_ITEM_FIELDS = {
    InspectionStage.INITIATED: frozenset(ITEM_BASIC_FIELDS),
    InspectionStage.STOCK_DETAILS: frozenset(STOCK_REGISTER_FIELDS),
    InspectionStage.CENTRAL_REGISTER: frozenset(CENTRAL_REGISTER_FIELDS),
    InspectionStage.AUDIT_REVIEW: frozenset(),
}

QUANTITY_FIELDS = frozenset(
    {'tendered_quantity', 'delivered_quantity', 'accepted_quantity', 'rejected_quantity'}
)


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _actor(user):
    if user is not None and user.is_authenticated:
        return user
    return None


def _coerce(model, data, fields, prefix=''):
    """Run model field conversion over `fields`, collecting every bad value."""
    cleaned = {}
    errors = {}
    for name in fields:
        value = data[name]
        field = model._meta.get_field(name)
        try:
            value = field.to_python(value)
        except DjangoValidationError as exc:
            errors[f'{prefix}{name}'] = ' '.join(exc.messages)
            continue
        if name in QUANTITY_FIELDS and (value is not None and value < 0):
            errors[f'{prefix}{name}'] = 'Must be zero or greater.'
            continue
        if name == 'unit_price' and value is not None and value < 0:
            errors[f'{prefix}{name}'] = 'Must be zero or greater.'
            continue
        if isinstance(value, str):
            value = value.strip()
        if value is None and not field.null:
            if not field.has_default():
                continue
            value = field.get_default()
        cleaned[name] = value
    return cleaned, errors


def _quantity_error(accepted, rejected, tendered):
    if (accepted or 0) + (rejected or 0) > (tendered or 0):
        return 'Accepted + Rejected quantity cannot exceed tendered quantity'
    return None


class WorkflowEngine:
    """
    Drives a certificate through its stages.

    `stock_service` provides `resolve_receiving_store` and `create_stock_entry`;
    `org_service` provides `is_root_unit` and `department_display_name`.
    Both default to the inventory services.
    """

    def __init__(self, stock_service=None, org_service=None):
        self.stock = stock_service or services
        self.org = org_service or services

    # ---------- helpers ----------
    def _lock(self, certificate_id, expected_stage=None):
        return InspectionCertificate.objects.get_for_update(certificate_id, expected_stage)

    def _require_stage(self, certificate, stage):
        if certificate.stage != stage:
            raise ConflictError(certificate.stage, stage)

    def _workflow_type_for(self, department):
        if self.org.is_root_unit(department):
            return WorkflowType.THREE_STAGE
        return WorkflowType.FOUR_STAGE

    def _resolve_department(self, value):
        if isinstance(value, Location):
            return value
        try:
            return Location.objects.get(pk=value)
        except (Location.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Location', value)

    def _clean_header(self, data, fields):
        errors = {}
        plain = [name for name in fields if name != 'department']
        cleaned, field_errors = _coerce(InspectionCertificate, data, plain)
        errors.update(field_errors)

        if 'department' in fields:
            department = self._resolve_department(data['department'])
            if not department.is_standalone:
                errors['department'] = 'Inspection certificates must be for standalone locations only'
            cleaned['department'] = department

        if 'contract_no' in cleaned and _blank(cleaned['contract_no']):
            cleaned['contract_no'] = None
        if 'delivery_type' in cleaned and cleaned['delivery_type'] not in ('FULL', 'PART'):
            errors['delivery_type'] = 'Must be FULL or PART.'
        return cleaned, errors

    def _check_contract_no(self, contract_no, exclude_id=None):
        if not contract_no:
            return {}
        existing = InspectionCertificate.objects.filter(contract_no=contract_no)
        if exclude_id is not None:
            existing = existing.exclude(pk=exclude_id)
        if existing.exists():
            return {'contract_no': f"Contract number {contract_no} is already in use."}
        return {}

    def _clean_new_items(self, items, offset=0):
        cleaned_items = []
        errors = {}
        for index, raw in enumerate(items, start=offset):
            prefix = f'inspection_items[{index}].'
            unknown = [name for name in raw if name not in ITEM_BASIC_FIELDS and name != 'id']
            for name in unknown:
                errors[f'{prefix}{name}'] = 'Unknown or read-only field.'
            cleaned, field_errors = _coerce(
                InspectionItem, raw, [name for name in raw if name in ITEM_BASIC_FIELDS], prefix
            )
            errors.update(field_errors)
            if _blank(cleaned.get('item_description')):
                errors[f'{prefix}item_description'] = 'This field is required.'
            if cleaned.get('tendered_quantity') is None and f'{prefix}tendered_quantity' not in errors:
                errors[f'{prefix}tendered_quantity'] = 'This field is required.'
            problem = _quantity_error(
                cleaned.get('accepted_quantity'),
                cleaned.get('rejected_quantity'),
                cleaned.get('tendered_quantity'),
            )
            if problem and not field_errors:
                errors[f'{prefix}accepted_quantity'] = problem
            cleaned_items.append(cleaned)
        return cleaned_items, errors

    def _transition(self, certificate, new_stage, user, rejection_reason=None):
        old_stage = certificate.transition_stage(new_stage, _actor(user), rejection_reason)
        UserActivity.log_activity(
            user, 'STAGE_TRANSITION', 'InspectionCertificate', certificate.id,
            {
                'certificate_no': certificate.certificate_no,
                'from_stage': old_stage,
                'to_stage': new_stage,
            }
        )
        logger.info(
            "Certificate %s moved from %s to %s", certificate.certificate_no, old_stage, new_stage
        )
        return certificate

    # ---------- creation / reads ----------
    @transaction.atomic
    def create(self, data, items=None, user=None):
        """Start a certificate in INITIATED; the workflow shape is fixed here."""
        data = dict(data or {})
        items = list(items if items is not None else data.pop('inspection_items', []) or [])
        data.pop('inspection_items', None)

        unknown = {
            name: 'Unknown or read-only field.'
            for name in data if name not in HEADER_FIELDS
        }
        if _blank(data.get('department')):
            raise ValidationError(
                dict(unknown, department='This field is required.'),
                message='Invalid certificate data'
            )

        header, errors = self._clean_header(data, [name for name in data if name in HEADER_FIELDS])
        errors.update(unknown)
        errors.update(self._check_contract_no(header.get('contract_no')))
        cleaned_items, item_errors = self._clean_new_items(items)
        errors.update(item_errors)
        if errors:
            raise ValidationError(errors, message='Invalid certificate data')

        department = header['department']
        actor = _actor(user)
        certificate = InspectionCertificate.objects.create(
            workflow_type=self._workflow_type_for(department),
            initiated_by=actor,
            initiated_at=timezone.now(),
            **header
        )
        for values in cleaned_items:
            InspectionItem.objects.create(inspection_certificate=certificate, **values)

        UserActivity.log_activity(
            user, 'CREATE_INSPECTION_CERTIFICATE', 'InspectionCertificate', certificate.id,
            {
                'certificate_no': certificate.certificate_no,
                'department': self.org.department_display_name(department),
                'workflow_type': certificate.workflow_type,
            }
        )
        logger.info(
            "Created certificate %s (%s) for %s",
            certificate.certificate_no, certificate.workflow_type, department.code
        )
        return certificate

    def get(self, certificate_id):
        try:
            return InspectionCertificate.objects.select_related('department').get(pk=certificate_id)
        except (InspectionCertificate.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('InspectionCertificate', certificate_id)

    # ---------- patch ----------
    @transaction.atomic
    def patch(self, certificate_id, data, user=None, expected_stage=None):
        """
        Update header fields and lines allowed in the current stage.

        `data` may carry `inspection_items`: existing lines are addressed by
        `id`; lines without one are added (INITIATED only).
        """
        certificate = self._lock(certificate_id, expected_stage)
        stage = certificate.stage
        data = dict(data or {})
        item_payloads = data.pop('inspection_items', None) or []

        header_allowed = EDITABLE_HEADER_FIELDS[stage]
        item_allowed = EDITABLE_ITEM_FIELDS[stage]

        errors = {
            name: f'Not editable in {stage} stage.'
            for name in data if name not in header_allowed
        }
        header, header_errors = self._clean_header(
            data, [name for name in data if name in header_allowed]
        )
        errors.update(header_errors)
        if 'contract_no' in header:
            errors.update(self._check_contract_no(header['contract_no'], exclude_id=certificate.id))

        lines = {line.id: line for line in certificate.inspection_items.all()}
        updates = []
        new_payloads = []
        for index, raw in enumerate(item_payloads):
            raw = dict(raw)
            line_id = raw.pop('id', None)
            if line_id is None:
                if stage != InspectionStage.INITIATED:
                    errors[f'inspection_items[{index}]'] = f'Items cannot be added in {stage} stage.'
                else:
                    new_payloads.append(raw)
                continue

            try:
                line = lines[int(line_id)]
            except (KeyError, ValueError, TypeError):
                raise NotFoundError('InspectionItem', line_id)

            prefix = f'inspection_items[{index}].'
            for name in raw:
                if name not in item_allowed:
                    errors[f'{prefix}{name}'] = f'Not editable in {stage} stage.'
            cleaned, field_errors = _coerce(
                InspectionItem, raw, [name for name in raw if name in item_allowed], prefix
            )
            errors.update(field_errors)

            if (stage == InspectionStage.CENTRAL_REGISTER and cleaned
                    and not line.is_item_linked):
                errors[f'{prefix}central_register_no'] = 'Item must be linked before register details are entered.'
            if 'item_description' in cleaned and _blank(cleaned['item_description']):
                errors[f'{prefix}item_description'] = 'This field is required.'

            problem = _quantity_error(
                cleaned.get('accepted_quantity', line.accepted_quantity),
                cleaned.get('rejected_quantity', line.rejected_quantity),
                cleaned.get('tendered_quantity', line.tendered_quantity),
            )
            if problem:
                errors[f'{prefix}accepted_quantity'] = problem
            updates.append((line, cleaned))

        new_items, new_errors = self._clean_new_items(new_payloads, offset=len(lines))
        errors.update(new_errors)

        if errors:
            raise ValidationError(errors, message=f'Invalid changes for {stage} stage')

        for name, value in header.items():
            setattr(certificate, name, value)
        # Workflow type follows the department until the certificate leaves INITIATED
        if 'department' in header:
            certificate.workflow_type = self._workflow_type_for(header['department'])
        if header:
            certificate.save()

        for line, cleaned in updates:
            for name, value in cleaned.items():
                setattr(line, name, value)
            if cleaned:
                line.save()

        for values in new_items:
            InspectionItem.objects.create(inspection_certificate=certificate, **values)

        UserActivity.log_activity(
            user, 'UPDATE_INSPECTION_CERTIFICATE', 'InspectionCertificate', certificate.id,
            {
                'certificate_no': certificate.certificate_no,
                'stage': stage,
                'fields': sorted(header),
                'items_updated': len(updates),
                'items_added': len(new_items),
            }
        )
        return certificate

    # ---------- transitions ----------
    @transaction.atomic
    def submit_to_stock_incharge(self, certificate_id, user=None, expected_stage=None):
        certificate = self._lock(certificate_id, expected_stage)
        self._require_stage(certificate, InspectionStage.INITIATED)

        missing = [
            name for name in REQUIRED_HEADER_FIELDS
            if _blank(getattr(certificate, 'department_id' if name == 'department' else name))
        ]
        if not certificate.inspection_items.exists():
            missing.append('inspection_items')
        if missing:
            raise ValidationError(
                missing,
                message=f"Please fill in all required fields: {', '.join(sorted(missing))}"
            )

        # The persisted workflow_type decides the branch, not the current hierarchy
        if certificate.is_three_stage:
            next_stage = InspectionStage.CENTRAL_REGISTER
        else:
            next_stage = InspectionStage.STOCK_DETAILS
        return self._transition(certificate, next_stage, user)

    @transaction.atomic
    def submit_stock_details(self, certificate_id, user=None, expected_stage=None):
        certificate = self._lock(certificate_id, expected_stage)
        if certificate.is_three_stage:
            raise ConflictError(
                certificate.stage,
                InspectionStage.STOCK_DETAILS,
                message='Root department certificates skip the stock details stage'
            )
        self._require_stage(certificate, InspectionStage.STOCK_DETAILS)

        errors = {}
        for line in accepted_lines(certificate):
            missing = [name for name in STOCK_REGISTER_FIELDS if _blank(getattr(line, name))]
            if missing:
                errors[f'inspection_items[{line.id}]'] = missing
        if errors:
            raise ValidationError(
                errors,
                message='Stock register details are required for every accepted item'
            )
        return self._transition(certificate, InspectionStage.CENTRAL_REGISTER, user)

    @transaction.atomic
    def submit_central_register(self, certificate_id, user=None, expected_stage=None):
        certificate = self._lock(certificate_id, expected_stage)
        self._require_stage(certificate, InspectionStage.CENTRAL_REGISTER)

        summary = linking_summary(certificate)
        if not summary['all_linked']:
            raise LinkingIncompleteError(
                summary['unlinked_count'],
                linking_examples(certificate),
                workflow_setting('LINKING_HINT'),
            )
        return self._transition(certificate, InspectionStage.AUDIT_REVIEW, user)

    @transaction.atomic
    def submit_audit_review(self, certificate_id, user=None, expected_stage=None):
        """Complete the certificate and receive one stock entry per linked line."""
        certificate = self._lock(certificate_id, expected_stage)
        self._require_stage(certificate, InspectionStage.AUDIT_REVIEW)

        summary = linking_summary(certificate)
        if not summary['all_linked']:
            raise LinkingIncompleteError(
                summary['unlinked_count'],
                linking_examples(certificate),
                workflow_setting('LINKING_HINT'),
            )

        self._transition(certificate, InspectionStage.COMPLETED, user)

        stock_entries = []
        lines = accepted_lines(certificate).filter(is_item_linked=True).select_related(
            'linked_item__category__parent_category', 'linked_item__default_location'
        )
        for line in lines:
            store = self.stock.resolve_receiving_store(certificate, line.linked_item)
            entry = self.stock.create_stock_entry(
                line.linked_item,
                store,
                line.accepted_quantity,
                certificate,
                inspection_item=line,
                user=_actor(user),
            )
            stock_entries.append(entry)
            UserActivity.log_activity(
                user, 'STOCK_ENTRY', 'StockEntry', entry.id,
                {
                    'certificate_no': certificate.certificate_no,
                    'item_code': line.linked_item.code,
                    'quantity': line.accepted_quantity,
                    'location': store.code,
                }
            )

        logger.info(
            "Certificate %s completed with %d stock entries",
            certificate.certificate_no, len(stock_entries)
        )
        return certificate, stock_entries

    approve = submit_audit_review

    @transaction.atomic
    def reject(self, certificate_id, reason, user=None, expected_stage=None):
        """
        Reject from any non-terminal stage and remove the catalog entries that
        were created while linking this certificate, unless something else
        now uses them.
        """
        reason = '' if reason is None else str(reason).strip()
        if not reason:
            raise ValidationError({'reason': 'Rejection reason required'})

        certificate = self._lock(certificate_id, expected_stage)
        self._transition(certificate, InspectionStage.REJECTED, user, rejection_reason=reason)
        report = self._cleanup_provisional_catalog(certificate)

        UserActivity.log_activity(
            user, 'REJECTION_CLEANUP', 'InspectionCertificate', certificate.id,
            dict(report, certificate_no=certificate.certificate_no)
        )
        return certificate, report

    def _cleanup_provisional_catalog(self, certificate):
        deleted_items = []
        deleted_categories = []
        warnings = []

        for item in certificate.provisional_items.all().order_by('id'):
            other_lines = InspectionItem.objects.filter(linked_item=item).exclude(
                inspection_certificate=certificate
            ).count()
            stock_entries = item.stock_entries.count()
            instances = item.instances.count()
            if other_lines or stock_entries or instances:
                warnings.append(
                    f"Item '{item.name}' was kept because it is in use "
                    f"({other_lines} other inspection item(s), {stock_entries} stock entr(ies), "
                    f"{instances} instance(s))."
                )
                continue

            certificate.inspection_items.filter(linked_item=item).update(
                is_item_linked=False, linked_item=None, linked_by=None, linked_at=None
            )
            deleted_items.append(item.name)
            item.delete()

        # Sub-categories before their parents
        categories = sorted(
            certificate.provisional_categories.all(),
            key=lambda category: category.parent_category_id is None
        )
        for category in categories:
            item_count = category.items.count()
            sub_count = category.subcategories.count()
            if item_count or sub_count:
                warnings.append(
                    f"Category '{category.name}' was kept because it may be in use by "
                    f"{item_count} item(s) and {sub_count} sub-categor(ies)."
                )
                continue
            deleted_categories.append(category.name)
            category.delete()

        if deleted_items or deleted_categories:
            logger.info(
                "Rejection of %s removed %d item(s) and %d categor(ies)",
                certificate.certificate_no, len(deleted_items), len(deleted_categories)
            )
        for warning in warnings:
            logger.warning("Rejection of %s: %s", certificate.certificate_no, warning)

        return {
            'deleted_items': deleted_items,
            'deleted_categories': deleted_categories,
            'cleanup_warnings': warnings,
        }
