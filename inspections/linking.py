# linking.py - matching inspection lines to catalog items during central register entry
import logging

from django.db import transaction
from django.utils import timezone

from inventory import services
from user_management.models import UserActivity

from .conf import workflow_setting
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import InspectionCertificate, InspectionStage
from .tracking import (
    STOCK_SETTING_FIELDS, TRACKING_ATTRIBUTE_FIELDS, allowed_fields_for,
    resolve_tracking_attributes, validate_link_attributes
)

logger = logging.getLogger(__name__)


def accepted_lines(certificate):
    """Lines that will produce stock; only these take part in linking."""
    return certificate.inspection_items.filter(accepted_quantity__gt=0)


def unlinked_lines(certificate):
    return accepted_lines(certificate).filter(is_item_linked=False)


def linking_summary(certificate):
    lines = accepted_lines(certificate)
    total = lines.count()
    linked = lines.filter(is_item_linked=True).count()
    return {
        'total_items': total,
        'linked_count': linked,
        'unlinked_count': total - linked,
        'all_linked': linked == total,
    }


def linking_examples(certificate, limit=None):
    limit = limit or workflow_setting('LINKING_EXAMPLE_LIMIT')
    return list(
        unlinked_lines(certificate).values_list('item_description', flat=True)[:limit]
    )


class LinkingReconciler:
    """
    Links every accepted inspection line to a catalog item before audit review.

    Each mutating call locks the certificate row, so the summary it returns
    reflects every other link/unlink on the same certificate.
    """

    def __init__(self, catalog_service=None):
        self.catalog = catalog_service or services

    # ---------- helpers ----------
    def _lock(self, certificate_id, expected_stage=None):
        certificate = InspectionCertificate.objects.get_for_update(certificate_id, expected_stage)
        if certificate.stage != InspectionStage.CENTRAL_REGISTER:
            raise ConflictError(
                certificate.stage,
                InspectionStage.CENTRAL_REGISTER,
                message=f'Item linking is only available in CENTRAL_REGISTER stage, currently in {certificate.stage}'
            )
        return certificate

    def _get_line(self, certificate, inspection_item_id):
        try:
            return certificate.inspection_items.get(pk=inspection_item_id)
        except (certificate.inspection_items.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('InspectionItem', inspection_item_id)

    def _current_attributes(self, line, attributes):
        merged = {name: getattr(line, name) for name in TRACKING_ATTRIBUTE_FIELDS}
        for name, value in (attributes or {}).items():
            if name in merged and value not in (None, ''):
                merged[name] = value
        return merged

    def _apply_link(self, line, item, resolved, user):
        line.is_item_linked = True
        line.linked_item = item
        line.linked_by = user if user is not None and user.is_authenticated else None
        line.linked_at = timezone.now()
        for name, value in resolved.items():
            setattr(line, name, value)
        line.save()

    def _result(self, certificate, line, **extra):
        result = {'inspection_item': line, 'linking_summary': linking_summary(certificate)}
        result.update(extra)
        return result

    # ---------- reads ----------
    def get_unlinked_items(self, certificate_id):
        try:
            certificate = InspectionCertificate.objects.get(pk=certificate_id)
        except (InspectionCertificate.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('InspectionCertificate', certificate_id)
        return {
            'unlinked_items': list(unlinked_lines(certificate)),
            'linking_summary': linking_summary(certificate),
        }

    # ---------- linking ----------
    @transaction.atomic
    def link_to_existing_item(self, certificate_id, inspection_item_id, item_id,
                              attributes=None, user=None, expected_stage=None):
        certificate = self._lock(certificate_id, expected_stage)
        line = self._get_line(certificate, inspection_item_id)
        item = self.catalog.get_item(item_id)

        tracking_type = item.tracking_type
        if not tracking_type:
            raise ValidationError({'item_id': f"Item {item.code} has no tracking type"})

        resolved = validate_link_attributes(
            tracking_type,
            line.accepted_quantity,
            self._current_attributes(line, attributes),
            item.shelf_life_days,
        )
        self._apply_link(line, item, resolved, user)

        UserActivity.log_activity(
            user, 'LINK_INSPECTION_ITEM', 'InspectionItem', line.id,
            {
                'certificate_no': certificate.certificate_no,
                'item_code': item.code,
                'tracking_type': tracking_type,
                'created_item': False,
            }
        )
        logger.info("Linked line %s of %s to item %s", line.id, certificate.certificate_no, item.code)
        return self._result(certificate, line, item=item)

    @transaction.atomic
    def create_and_link_item(self, certificate_id, inspection_item_id, item_data,
                             attributes=None, user=None, expected_stage=None):
        certificate = self._lock(certificate_id, expected_stage)
        line = self._get_line(certificate, inspection_item_id)

        item = self.catalog.create_item(item_data or {}, user=user, certificate=certificate)
        resolved = validate_link_attributes(
            item.tracking_type,
            line.accepted_quantity,
            self._current_attributes(line, attributes),
            item.shelf_life_days,
        )
        self._apply_link(line, item, resolved, user)

        UserActivity.log_activity(
            user, 'CREATE_ITEM', 'Item', item.id,
            {'certificate_no': certificate.certificate_no, 'item_code': item.code}
        )
        UserActivity.log_activity(
            user, 'LINK_INSPECTION_ITEM', 'InspectionItem', line.id,
            {
                'certificate_no': certificate.certificate_no,
                'item_code': item.code,
                'tracking_type': item.tracking_type,
                'created_item': True,
            }
        )
        logger.info(
            "Created item %s for line %s of %s", item.code, line.id, certificate.certificate_no
        )
        return self._result(certificate, line, item=item)

    @transaction.atomic
    def create_sub_category(self, certificate_id, draft, user=None, expected_stage=None):
        certificate = self._lock(certificate_id, expected_stage)
        category = self.catalog.create_sub_category(draft or {}, user=user, certificate=certificate)

        UserActivity.log_activity(
            user, 'CREATE_SUB_CATEGORY', 'Category', category.id,
            {
                'certificate_no': certificate.certificate_no,
                'name': category.name,
                'parent_category': category.parent_category.name,
            }
        )
        return category

    @transaction.atomic
    def unlink_item(self, certificate_id, inspection_item_id, user=None, expected_stage=None):
        """Drop a line's link; the catalog item itself is left alone."""
        certificate = InspectionCertificate.objects.get_for_update(certificate_id, expected_stage)
        if certificate.stage == InspectionStage.AUDIT_REVIEW:
            raise ConflictError(
                certificate.stage,
                InspectionStage.CENTRAL_REGISTER,
                message='Items cannot be unlinked once the certificate is in audit review'
            )
        line = self._get_line(certificate, inspection_item_id)
        if not line.is_item_linked:
            raise ValidationError({'inspection_item_id': 'Item is not linked.'})
        previous_item = line.linked_item

        line.is_item_linked = False
        line.linked_item = None
        line.linked_by = None
        line.linked_at = None
        for name in TRACKING_ATTRIBUTE_FIELDS:
            setattr(line, name, None)
        line.save()

        UserActivity.log_activity(
            user, 'UNLINK_INSPECTION_ITEM', 'InspectionItem', line.id,
            {
                'certificate_no': certificate.certificate_no,
                'item_code': previous_item.code if previous_item else None,
            }
        )
        return self._result(certificate, line)

    # ---------- register / stock settings ----------
    def _get_linked_line(self, certificate, inspection_item_id):
        line = self._get_line(certificate, inspection_item_id)
        if not line.is_item_linked or line.linked_item_id is None:
            raise ValidationError(
                {'inspection_item_id': 'Item must be linked before this can be updated.'}
            )
        return line

    @transaction.atomic
    def update_central_register_details(self, certificate_id, inspection_item_id,
                                        central_register_no=None, central_register_page_no=None,
                                        user=None, expected_stage=None):
        certificate = self._lock(certificate_id, expected_stage)
        line = self._get_linked_line(certificate, inspection_item_id)

        values = {
            'central_register_no': str(central_register_no or '').strip(),
            'central_register_page_no': str(central_register_page_no or '').strip(),
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ValidationError(missing, message='Central register details are incomplete')

        line.central_register_no = values['central_register_no']
        line.central_register_page_no = values['central_register_page_no']
        line.save(update_fields=['central_register_no', 'central_register_page_no'])

        UserActivity.log_activity(
            user, 'UPDATE_INSPECTION_CERTIFICATE', 'InspectionItem', line.id,
            {'certificate_no': certificate.certificate_no, **values}
        )
        return self._result(certificate, line)

    @transaction.atomic
    def update_item_stock_settings(self, certificate_id, inspection_item_id, settings,
                                   user=None, expected_stage=None):
        """Stock thresholds and warranty on a linked line, gated by its tracking type."""
        certificate = self._lock(certificate_id, expected_stage)
        line = self._get_linked_line(certificate, inspection_item_id)
        tracking_type = line.linked_item.tracking_type

        allowed = STOCK_SETTING_FIELDS & allowed_fields_for(tracking_type)
        settings = settings or {}
        not_allowed = {
            name: f"Not applicable to {tracking_type} items."
            for name in settings if name not in allowed
        }
        if not_allowed:
            raise ValidationError(not_allowed, message='Invalid stock settings')

        resolved = resolve_tracking_attributes(tracking_type, settings)
        for name in settings:
            setattr(line, name, resolved[name])
        line.save()

        UserActivity.log_activity(
            user, 'UPDATE_INSPECTION_CERTIFICATE', 'InspectionItem', line.id,
            {
                'certificate_no': certificate.certificate_no,
                'stock_settings': {name: resolved[name] for name in settings},
            }
        )
        return self._result(certificate, line)
