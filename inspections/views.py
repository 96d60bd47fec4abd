# views.py - REST surface of the inspection certificate workflow
import logging

from django.db.models import Q
from django.http import HttpResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from inventory.models import Location
from inventory.serializers import CategorySerializer, ItemMinimalSerializer, LocationMinimalSerializer
from user_management.models import UserActivity, UserRole

from . import policies
from .conf import workflow_setting
from .exceptions import ValidationError, WorkflowError
from .generator import InspectionCertificatePdf
from .linking import LinkingReconciler
from .models import InspectionCertificate, InspectionStage
from .permissions import InspectionCertificatePermission
from .serializers import (
    InspectionCertificateListSerializer, InspectionCertificateSerializer,
    InspectionItemSerializer, StockEntrySummarySerializer, next_step_for
)
from .tracking import TRACKING_ATTRIBUTE_FIELDS
from .workflow import WorkflowEngine

logger = logging.getLogger(__name__)

CONTROL_FIELDS = ('expected_stage', 'inspection_item_id')


def _payload(request):
    data = request.data
    if hasattr(data, 'dict'):
        return data.dict()
    return dict(data)


def _require(data, *names):
    missing = [name for name in names if data.get(name) in (None, '')]
    if missing:
        raise ValidationError(missing)


def _tracking_attributes(data):
    if isinstance(data.get('tracking_attributes'), dict):
        return data['tracking_attributes']
    return {name: data[name] for name in TRACKING_ATTRIBUTE_FIELDS if name in data}


class InspectionCertificateViewSet(mixins.ListModelMixin,
                                   mixins.RetrieveModelMixin,
                                   viewsets.GenericViewSet):
    queryset = InspectionCertificate.objects.select_related('department').all()
    serializer_class = InspectionCertificateSerializer
    permission_classes = [IsAuthenticated, InspectionCertificatePermission]
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    engine_class = WorkflowEngine
    reconciler_class = LinkingReconciler

    def get_engine(self):
        return self.engine_class()

    def get_reconciler(self):
        return self.reconciler_class()

    def get_serializer_class(self):
        if self.action == 'list':
            return InspectionCertificateListSerializer
        return super().get_serializer_class()

    def handle_exception(self, exc):
        if isinstance(exc, WorkflowError):
            logger.info("Workflow action %s refused: %s", getattr(self, 'action', None), exc.message)
            return Response(exc.to_response_data(), status=exc.status_code)
        return super().handle_exception(exc)

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user

        if not hasattr(user, 'profile'):
            return queryset.none()

        profile = user.profile

        if profile.role in [UserRole.SYSTEM_ADMIN, UserRole.AUDITOR]:
            pass
        elif profile.role == UserRole.LOCATION_HEAD:
            visible = Q(pk__in=[])
            for location in profile.assigned_locations.all():
                visible |= Q(department=location)
                visible |= Q(department__hierarchy_path__startswith=f"{location.hierarchy_path}/")
            queryset = queryset.filter(visible)
        elif profile.role == UserRole.STOCK_INCHARGE:
            department_ids = set()
            for store in profile.assigned_locations.filter(is_store=True):
                parent_standalone = store.get_parent_standalone()
                if parent_standalone:
                    department_ids.add(parent_standalone.id)
            visible = Q(department_id__in=department_ids)
            if profile.is_main_store_incharge():
                # Central store sees every department once it reaches the central register
                visible |= Q(stage__in=[
                    InspectionStage.CENTRAL_REGISTER,
                    InspectionStage.AUDIT_REVIEW,
                    InspectionStage.COMPLETED,
                ])
            queryset = queryset.filter(visible)
        else:
            return queryset.none()

        stage = self.request.query_params.get('stage')
        status_filter = self.request.query_params.get('status')
        department = self.request.query_params.get('department')

        if stage:
            queryset = queryset.filter(stage=stage)
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if department:
            queryset = queryset.filter(department_id=department)

        return queryset

    def _certificate_data(self, certificate):
        certificate.refresh_from_db()
        return InspectionCertificateSerializer(certificate, context={'request': self.request}).data

    def _transition_response(self, certificate, message, **extra):
        data = {
            'message': message,
            'new_stage': certificate.stage,
            'stage_display': certificate.get_stage_display(),
            'next_step': next_step_for(certificate),
        }
        data.update(extra)
        data['certificate'] = self._certificate_data(certificate)
        return Response(data)

    # ---------- create / patch ----------
    def _check_department_access(self, department_id):
        if department_id in (None, ''):
            return
        try:
            department = Location.objects.filter(pk=department_id).first()
        except (ValueError, TypeError):
            # The engine reports the unknown location
            return
        if department and not policies.can_create_certificate(self.request.user, department):
            raise PermissionDenied("You don't have access to this department")

    def create(self, request, *args, **kwargs):
        data = _payload(request)
        self._check_department_access(data.get('department'))

        certificate = self.get_engine().create(data, user=request.user)
        return Response(self._certificate_data(certificate), status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        certificate = self.get_object()
        data = _payload(request)
        if 'department' in data:
            self._check_department_access(data['department'])
        expected_stage = data.pop('expected_stage', None)
        certificate = self.get_engine().patch(
            certificate.pk, data, user=request.user, expected_stage=expected_stage
        )
        return Response(self._certificate_data(certificate))

    @action(detail=False, methods=['get'])
    def creation_options(self, request):
        """Departments the caller can open certificates for."""
        departments = policies.creatable_departments(request.user)
        profile = request.user.profile
        if profile.role == UserRole.SYSTEM_ADMIN:
            can_select_department = True
        else:
            # A single department is fixed in the form
            can_select_department = departments.count() > 1

        return Response({
            'departments': LocationMinimalSerializer(departments, many=True).data,
            'can_select_department': can_select_department,
            'can_create': policies.can_create_certificate(request.user),
            'user_role': profile.role,
        })

    # ---------- stage transitions ----------
    @action(detail=True, methods=['post'])
    def submit_to_stock_incharge(self, request, pk=None):
        certificate = self.get_object()
        certificate = self.get_engine().submit_to_stock_incharge(
            certificate.pk, user=request.user, expected_stage=request.data.get('expected_stage')
        )
        if certificate.stage == InspectionStage.CENTRAL_REGISTER:
            message = 'Submitted directly to Central Store (root department workflow)'
        else:
            message = 'Submitted to Department Store Incharge for stock details'
        return self._transition_response(certificate, message)

    @action(detail=True, methods=['post'])
    def submit_stock_details(self, request, pk=None):
        certificate = self.get_object()
        certificate = self.get_engine().submit_stock_details(
            certificate.pk, user=request.user, expected_stage=request.data.get('expected_stage')
        )
        return self._transition_response(certificate, 'Stock details submitted to Central Store')

    @action(detail=True, methods=['post'])
    def submit_central_register(self, request, pk=None):
        certificate = self.get_object()
        certificate = self.get_engine().submit_central_register(
            certificate.pk, user=request.user, expected_stage=request.data.get('expected_stage')
        )
        return self._transition_response(certificate, 'Central register submitted for audit review')

    @action(detail=True, methods=['post'])
    def submit_audit_review(self, request, pk=None):
        certificate = self.get_object()
        certificate, entries = self.get_engine().submit_audit_review(
            certificate.pk, user=request.user, expected_stage=request.data.get('expected_stage')
        )
        instances_created = sum(entry.instances.count() for entry in entries)
        return self._transition_response(
            certificate,
            f'Audit completed successfully. Created {len(entries)} stock entries.',
            stock_entries=StockEntrySummarySerializer(entries, many=True).data,
            instances_created=instances_created,
            workflow_completed=True,
        )

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        return self.submit_audit_review(request, pk=pk)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        certificate = self.get_object()
        reason = request.data.get('reason')
        certificate, report = self.get_engine().reject(
            certificate.pk, reason, user=request.user,
            expected_stage=request.data.get('expected_stage')
        )
        return self._transition_response(
            certificate, 'Certificate rejected', reason=certificate.rejection_reason, **report
        )

    # ---------- linking ----------
    def _linking_response(self, result, message, status_code=status.HTTP_200_OK):
        data = {
            'message': message,
            'inspection_item': InspectionItemSerializer(result['inspection_item']).data,
            'linking_summary': result['linking_summary'],
        }
        if result.get('item') is not None:
            data['item'] = ItemMinimalSerializer(result['item']).data
        return Response(data, status=status_code)

    @action(detail=True, methods=['get'])
    def unlinked_items(self, request, pk=None):
        certificate = self.get_object()
        result = self.get_reconciler().get_unlinked_items(certificate.pk)
        return Response({
            'unlinked_items': InspectionItemSerializer(result['unlinked_items'], many=True).data,
            'linking_summary': result['linking_summary'],
        })

    @action(detail=True, methods=['post'])
    def link_to_existing_item(self, request, pk=None):
        certificate = self.get_object()
        data = _payload(request)
        _require(data, 'inspection_item_id', 'item_id')
        result = self.get_reconciler().link_to_existing_item(
            certificate.pk,
            data['inspection_item_id'],
            data['item_id'],
            attributes=_tracking_attributes(data),
            user=request.user,
            expected_stage=data.get('expected_stage'),
        )
        return self._linking_response(result, 'Item linked successfully')

    @action(detail=True, methods=['post'])
    def create_and_link_item(self, request, pk=None):
        certificate = self.get_object()
        data = _payload(request)
        _require(data, 'inspection_item_id', 'item_data')
        result = self.get_reconciler().create_and_link_item(
            certificate.pk,
            data['inspection_item_id'],
            data['item_data'],
            attributes=_tracking_attributes(data),
            user=request.user,
            expected_stage=data.get('expected_stage'),
        )
        return self._linking_response(
            result, 'Item created and linked successfully', status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'])
    def create_sub_category(self, request, pk=None):
        certificate = self.get_object()
        data = _payload(request)
        expected_stage = data.pop('expected_stage', None)
        category = self.get_reconciler().create_sub_category(
            certificate.pk, data, user=request.user, expected_stage=expected_stage
        )
        return Response({
            'message': f"Sub-category '{category.name}' created",
            'category': CategorySerializer(category).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def unlink_item(self, request, pk=None):
        certificate = self.get_object()
        data = _payload(request)
        _require(data, 'inspection_item_id')
        result = self.get_reconciler().unlink_item(
            certificate.pk, data['inspection_item_id'],
            user=request.user, expected_stage=data.get('expected_stage')
        )
        return self._linking_response(result, 'Item unlinked successfully')

    @action(detail=True, methods=['post'])
    def update_central_register_details(self, request, pk=None):
        certificate = self.get_object()
        data = _payload(request)
        _require(data, 'inspection_item_id')
        result = self.get_reconciler().update_central_register_details(
            certificate.pk,
            data['inspection_item_id'],
            central_register_no=data.get('central_register_no'),
            central_register_page_no=data.get('central_register_page_no'),
            user=request.user,
            expected_stage=data.get('expected_stage'),
        )
        return self._linking_response(result, 'Central register details updated')

    @action(detail=True, methods=['post'])
    def update_item_stock_settings(self, request, pk=None):
        certificate = self.get_object()
        data = _payload(request)
        _require(data, 'inspection_item_id')
        settings = {name: value for name, value in data.items() if name not in CONTROL_FIELDS}
        result = self.get_reconciler().update_item_stock_settings(
            certificate.pk,
            data['inspection_item_id'],
            settings,
            user=request.user,
            expected_stage=data.get('expected_stage'),
        )
        return self._linking_response(result, 'Stock settings updated')

    # ---------- document ----------
    @action(detail=True, methods=['get'])
    def download_pdf(self, request, pk=None):
        certificate = self.get_object()
        if certificate.stage != InspectionStage.COMPLETED:
            return Response(
                {'error': 'Certificate must be completed to download PDF'},
                status=status.HTTP_400_BAD_REQUEST
            )

        pdf = InspectionCertificatePdf(
            certificate,
            logo_path=workflow_setting('PDF_LOGO_PATH'),
            institution_name=workflow_setting('PDF_INSTITUTION_NAME'),
            section_name=workflow_setting('PDF_SECTION_NAME'),
        ).render()

        UserActivity.log_activity(
            request.user, 'DOWNLOAD_PDF', 'InspectionCertificate', certificate.id,
            {'certificate_no': certificate.certificate_no}
        )

        response = HttpResponse(pdf, content_type='application/pdf')
        response['Content-Disposition'] = (
            f'attachment; filename="Inspection_Certificate_{certificate.certificate_no}.pdf"'
        )
        return response
