# serializers.py - read representations for inspection certificates
from rest_framework import serializers

from inventory.models import StockEntry

from . import policies
from .linking import linking_summary
from .models import InspectionCertificate, InspectionItem, InspectionStage
from .tracking import allowed_fields_for, required_fields_for
from .workflow import EDITABLE_HEADER_FIELDS, EDITABLE_ITEM_FIELDS


class InspectionItemSerializer(serializers.ModelSerializer):
    linked_item_name = serializers.CharField(source='linked_item.name', read_only=True, default=None)
    linked_item_code = serializers.CharField(source='linked_item.code', read_only=True, default=None)
    linked_by_name = serializers.SerializerMethodField()
    tracking_type = serializers.SerializerMethodField()
    required_tracking_fields = serializers.SerializerMethodField()
    allowed_tracking_fields = serializers.SerializerMethodField()
    total_value = serializers.SerializerMethodField()

    class Meta:
        model = InspectionItem
        exclude = ['inspection_certificate']

    def get_linked_by_name(self, obj):
        if obj.linked_by:
            return obj.linked_by.get_full_name() or obj.linked_by.username
        return None

    def get_tracking_type(self, obj):
        return obj.tracking_type

    def get_required_tracking_fields(self, obj):
        if not obj.tracking_type:
            return []
        return sorted(required_fields_for(obj.tracking_type, obj.accepted_quantity))

    def get_allowed_tracking_fields(self, obj):
        if not obj.tracking_type:
            return []
        return sorted(allowed_fields_for(obj.tracking_type))

    def get_total_value(self, obj):
        if obj.unit_price is not None:
            return float(obj.accepted_quantity * obj.unit_price)
        return None


class InspectionCertificateSerializer(serializers.ModelSerializer):
    inspection_items = InspectionItemSerializer(many=True, read_only=True)
    department_name = serializers.CharField(source='department.name', read_only=True)
    department_full_path = serializers.SerializerMethodField()
    main_store_name = serializers.SerializerMethodField()
    stage_display = serializers.CharField(source='get_stage_display', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    workflow_type_display = serializers.CharField(source='get_workflow_type_display', read_only=True)
    is_root_department = serializers.SerializerMethodField()

    initiated_by_name = serializers.SerializerMethodField()
    stock_filled_by_name = serializers.SerializerMethodField()
    central_register_by_name = serializers.SerializerMethodField()
    auditor_reviewed_by_name = serializers.SerializerMethodField()
    rejected_by_name = serializers.SerializerMethodField()

    linking_summary = serializers.SerializerMethodField()
    editable_fields = serializers.SerializerMethodField()
    capabilities = serializers.SerializerMethodField()

    total_items_count = serializers.SerializerMethodField()
    total_accepted = serializers.SerializerMethodField()
    total_rejected = serializers.SerializerMethodField()

    class Meta:
        model = InspectionCertificate
        fields = '__all__'

    def _name(self, user):
        if user:
            return user.get_full_name() or user.username
        return None

    def get_department_full_path(self, obj):
        return obj.department.get_full_path()

    def get_main_store_name(self, obj):
        main_store = obj.get_main_store()
        return main_store.name if main_store else None

    def get_is_root_department(self, obj):
        # Fixed at creation through workflow_type
        return obj.is_three_stage

    def get_initiated_by_name(self, obj):
        return self._name(obj.initiated_by)

    def get_stock_filled_by_name(self, obj):
        return self._name(obj.stock_filled_by)

    def get_central_register_by_name(self, obj):
        return self._name(obj.central_register_by)

    def get_auditor_reviewed_by_name(self, obj):
        return self._name(obj.auditor_reviewed_by)

    def get_rejected_by_name(self, obj):
        return self._name(obj.rejected_by)

    def get_linking_summary(self, obj):
        return linking_summary(obj)

    def get_editable_fields(self, obj):
        return {
            'certificate': sorted(EDITABLE_HEADER_FIELDS.get(obj.stage, ())),
            'items': sorted(EDITABLE_ITEM_FIELDS.get(obj.stage, ())),
        }

    def get_capabilities(self, obj):
        request = self.context.get('request')
        if not request:
            return []
        return sorted(policies.capabilities_for(request.user, obj))

    def get_total_items_count(self, obj):
        return obj.get_total_items()

    def get_total_accepted(self, obj):
        return obj.get_total_accepted()

    def get_total_rejected(self, obj):
        return obj.get_total_rejected()


class InspectionCertificateListSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(source='department.name', read_only=True)
    stage_display = serializers.CharField(source='get_stage_display', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    items_count = serializers.IntegerField(source='inspection_items.count', read_only=True)

    class Meta:
        model = InspectionCertificate
        fields = [
            'id', 'certificate_no', 'contract_no', 'date', 'contractor_name',
            'department', 'department_name', 'stage', 'stage_display', 'status',
            'status_display', 'workflow_type', 'items_count', 'created_at',
        ]


class StockEntrySummarySerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='item.code', read_only=True)
    to_location_name = serializers.CharField(source='to_location.name', read_only=True)
    instances_count = serializers.IntegerField(source='instances.count', read_only=True)

    class Meta:
        model = StockEntry
        fields = [
            'id', 'entry_number', 'item', 'item_code', 'quantity', 'to_location',
            'to_location_name', 'batch_number', 'expiry_date', 'instances_count',
        ]


def next_step_for(certificate):
    steps = {
        InspectionStage.INITIATED: 'Location Head completes basic details and items',
        InspectionStage.STOCK_DETAILS: 'Department Store Incharge fills stock register details',
        InspectionStage.CENTRAL_REGISTER: 'Central Store Incharge links items and fills central register',
        InspectionStage.AUDIT_REVIEW: 'Auditor reviews and completes the certificate',
        InspectionStage.COMPLETED: 'Workflow complete',
        InspectionStage.REJECTED: 'Certificate rejected',
    }
    return steps.get(certificate.stage, '')

