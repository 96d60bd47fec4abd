# permissions.py - DRF guard for the inspection certificate viewset
from rest_framework import permissions

from . import policies


class InspectionCertificatePermission(permissions.BasePermission):
    """
    Maps each viewset action to the capability it needs.

    Stage 1 (INITIATED): Location Head creates, edits and submits
    Stage 2 (STOCK_DETAILS): Department Store Incharge fills stock register
    Stage 3 (CENTRAL_REGISTER): Central Store Incharge links items and fills central register
    Stage 4 (AUDIT_REVIEW): Auditor approves; Auditor may reject at any open stage
    """

    ACTION_CAPABILITIES = {
        'submit_to_stock_incharge': policies.CAN_SUBMIT_INITIATED,
        'submit_stock_details': policies.CAN_SUBMIT_STOCK_DETAILS,
        'submit_central_register': policies.CAN_SUBMIT_CENTRAL_REGISTER,
        'submit_audit_review': policies.CAN_APPROVE,
        'approve': policies.CAN_APPROVE,
        'reject': policies.CAN_REJECT,
        'link_to_existing_item': policies.CAN_LINK_ITEMS,
        'create_and_link_item': policies.CAN_LINK_ITEMS,
        'create_sub_category': policies.CAN_LINK_ITEMS,
        'unlink_item': policies.CAN_LINK_ITEMS,
        'update_central_register_details': policies.CAN_LINK_ITEMS,
        'update_item_stock_settings': policies.CAN_LINK_ITEMS,
    }

    READ_ACTIONS = ('retrieve', 'unlinked_items', 'download_pdf')

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        if not hasattr(request.user, 'profile'):
            return False

        if view.action == 'create':
            return policies.can_create_certificate(request.user)

        return True

    def has_object_permission(self, request, view, obj):
        if not policies.can_view_certificate(request.user, obj):
            # Actors of later stages may not see the certificate yet but can still act on it
            capability = self.ACTION_CAPABILITIES.get(view.action)
            if capability is None or not policies.user_has_capability(request.user, capability, obj):
                return False

        if view.action in self.READ_ACTIONS:
            return True

        if view.action in ('update', 'partial_update'):
            capability = policies.edit_capability_for(obj)
            if capability is None:
                return True
            return policies.user_has_capability(request.user, capability, obj)

        capability = self.ACTION_CAPABILITIES.get(view.action)
        if capability is None:
            return False
        return policies.user_has_capability(request.user, capability, obj)
