"""
Capability policy for the inspection workflow.

Each workflow action declares one capability; whether a user holds it for a
given certificate is decided here from their role and location access.
Stage preconditions stay with the workflow engine.
"""
from inventory.models import Location
from user_management.models import UserRole

from .models import TERMINAL_STAGES, InspectionCertificate, InspectionStage

CAN_EDIT_INITIATED = 'CAN_EDIT_INITIATED'
CAN_SUBMIT_INITIATED = 'CAN_SUBMIT_INITIATED'
CAN_SUBMIT_STOCK_DETAILS = 'CAN_SUBMIT_STOCK_DETAILS'
CAN_SUBMIT_CENTRAL_REGISTER = 'CAN_SUBMIT_CENTRAL_REGISTER'
CAN_LINK_ITEMS = 'CAN_LINK_ITEMS'
CAN_APPROVE = 'CAN_APPROVE'
CAN_REJECT = 'CAN_REJECT'

ALL_CAPABILITIES = frozenset({
    CAN_EDIT_INITIATED,
    CAN_SUBMIT_INITIATED,
    CAN_SUBMIT_STOCK_DETAILS,
    CAN_SUBMIT_CENTRAL_REGISTER,
    CAN_LINK_ITEMS,
    CAN_APPROVE,
    CAN_REJECT,
})

# Capability needed to edit a certificate while it sits in a stage
EDIT_CAPABILITY_BY_STAGE = {
    InspectionStage.INITIATED: CAN_EDIT_INITIATED,
    InspectionStage.STOCK_DETAILS: CAN_SUBMIT_STOCK_DETAILS,
    InspectionStage.CENTRAL_REGISTER: CAN_SUBMIT_CENTRAL_REGISTER,
    InspectionStage.AUDIT_REVIEW: CAN_APPROVE,
}


def _profile(user):
    if not user or not user.is_authenticated:
        return None
    return getattr(user, 'profile', None)


def _is_department_store_incharge(profile, certificate):
    if profile.role != UserRole.STOCK_INCHARGE or profile.is_main_store_incharge():
        return False
    main_store = certificate.get_main_store()
    return bool(main_store and profile.has_location_access(main_store))


def _is_central_store_incharge(profile):
    return profile.role == UserRole.STOCK_INCHARGE and profile.is_main_store_incharge()


def capabilities_for(user, certificate):
    """Every capability `user` holds on `certificate`."""
    profile = _profile(user)
    if profile is None or not profile.is_active:
        return frozenset()

    if profile.role == UserRole.SYSTEM_ADMIN:
        return ALL_CAPABILITIES

    granted = set()
    if profile.role == UserRole.LOCATION_HEAD and profile.has_location_access(certificate.department):
        granted.update({CAN_EDIT_INITIATED, CAN_SUBMIT_INITIATED})
    if _is_department_store_incharge(profile, certificate):
        granted.add(CAN_SUBMIT_STOCK_DETAILS)
    if _is_central_store_incharge(profile):
        granted.update({CAN_SUBMIT_CENTRAL_REGISTER, CAN_LINK_ITEMS})
    if profile.role == UserRole.AUDITOR:
        granted.update({CAN_APPROVE, CAN_REJECT})
    return frozenset(granted)


def user_has_capability(user, capability, certificate):
    return capability in capabilities_for(user, certificate)


def edit_capability_for(certificate):
    """None for terminal certificates; the engine reports those itself."""
    return EDIT_CAPABILITY_BY_STAGE.get(certificate.stage)


def can_view_certificate(user, certificate):
    profile = _profile(user)
    if profile is None:
        return False
    if profile.role in (UserRole.SYSTEM_ADMIN, UserRole.AUDITOR):
        return True
    if profile.role == UserRole.LOCATION_HEAD:
        return profile.has_location_access(certificate.department)
    if profile.role == UserRole.STOCK_INCHARGE:
        main_store = certificate.get_main_store()
        if main_store and profile.has_location_access(main_store):
            return True
        # Central store sees certificates once they reach its register
        return profile.is_main_store_incharge() and certificate.stage in (
            InspectionStage.CENTRAL_REGISTER,
            InspectionStage.AUDIT_REVIEW,
            InspectionStage.COMPLETED,
        )
    return False


def can_create_certificate(user, department=None):
    profile = _profile(user)
    if profile is None or not profile.can_create_inspection_certificates():
        return False
    if department is None or profile.role == UserRole.SYSTEM_ADMIN:
        return True
    return profile.has_location_access(department)


def pending_certificate_count(user):
    """Open certificates waiting on an action `user` can take at their current stage."""
    open_certificates = InspectionCertificate.objects.exclude(
        stage__in=TERMINAL_STAGES
    ).select_related('department')
    return sum(
        1 for certificate in open_certificates
        if user_has_capability(user, edit_capability_for(certificate), certificate)
    )


def creatable_departments(user):
    """Standalone units `user` may open certificates for."""
    profile = _profile(user)
    standalone = Location.objects.filter(is_standalone=True, is_active=True)
    if profile is None or not profile.can_create_inspection_certificates():
        return standalone.none()
    if profile.role == UserRole.SYSTEM_ADMIN:
        return standalone
    allowed = [location.id for location in standalone if profile.has_location_access(location)]
    return standalone.filter(id__in=allowed)
