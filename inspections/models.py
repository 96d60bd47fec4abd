# models.py - inspection certificates and their line items
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from inventory.models import Item, Location

from .exceptions import ConflictError, NotFoundError, TerminalStateError


class InspectionStage(models.TextChoices):
    INITIATED = 'INITIATED', 'Initiated - Basic Info'
    STOCK_DETAILS = 'STOCK_DETAILS', 'Stock Details Entry'
    CENTRAL_REGISTER = 'CENTRAL_REGISTER', 'Central Register Entry'
    AUDIT_REVIEW = 'AUDIT_REVIEW', 'Audit Review'
    COMPLETED = 'COMPLETED', 'Completed'
    REJECTED = 'REJECTED', 'Rejected'


# Forward order of the pipeline; REJECTED sits outside it
STAGE_ORDER = [
    InspectionStage.INITIATED,
    InspectionStage.STOCK_DETAILS,
    InspectionStage.CENTRAL_REGISTER,
    InspectionStage.AUDIT_REVIEW,
    InspectionStage.COMPLETED,
]

TERMINAL_STAGES = (InspectionStage.COMPLETED, InspectionStage.REJECTED)


class WorkflowType(models.TextChoices):
    THREE_STAGE = 'THREE_STAGE', 'Three Stage (Root Department)'
    FOUR_STAGE = 'FOUR_STAGE', 'Four Stage'


class InspectionCertificateManager(models.Manager):
    def get_for_update(self, certificate_id, expected_stage=None, allow_terminal=False):
        """
        Fetch and row-lock a certificate for a mutating operation.
        Must run inside transaction.atomic.
        """
        try:
            certificate = self.select_for_update().get(pk=certificate_id)
        except (self.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('InspectionCertificate', certificate_id)

        if certificate.is_terminal and not allow_terminal:
            raise TerminalStateError(certificate.stage)
        if expected_stage and certificate.stage != expected_stage:
            raise ConflictError(certificate.stage, expected_stage)
        return certificate


class InspectionCertificate(models.Model):
    STATUS_CHOICES = [
        ('DRAFT', 'Draft'),
        ('IN_PROGRESS', 'In Progress'),
        ('CONFIRMED', 'Confirmed'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]

    # Basic Info (Stage 1 - Location Head)
    certificate_no = models.CharField(max_length=50, unique=True, editable=False)
    date = models.DateField(null=True, blank=True)
    contract_no = models.CharField(max_length=100, unique=True, null=True, blank=True)
    contract_date = models.DateField(null=True, blank=True)
    contractor_name = models.CharField(max_length=255, blank=True, default='')
    contractor_address = models.TextField(blank=True, null=True)
    indenter = models.CharField(max_length=150, blank=True, default='')
    indent_no = models.CharField(max_length=100, blank=True, default='')
    department = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        related_name='department_certificates',
        limit_choices_to={'is_standalone': True},
        help_text="Must be a standalone location (Department, Main University, etc.)"
    )
    date_of_delivery = models.DateField(null=True, blank=True)
    delivery_type = models.CharField(
        max_length=20,
        choices=[('PART', 'Part'), ('FULL', 'Full')],
        default='FULL'
    )
    inspected_by = models.CharField(max_length=150, blank=True, null=True)
    date_of_inspection = models.DateField(null=True, blank=True)
    consignee_name = models.CharField(max_length=150, blank=True, null=True)
    consignee_designation = models.CharField(max_length=150, blank=True, null=True)
    remarks = models.TextField(blank=True, null=True)

    # Central store / finance
    central_store_entry_date = models.DateField(null=True, blank=True)
    finance_check_date = models.DateField(null=True, blank=True)

    # Workflow
    stage = models.CharField(
        max_length=20,
        choices=InspectionStage.choices,
        default=InspectionStage.INITIATED
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='IN_PROGRESS')
    workflow_type = models.CharField(
        max_length=20,
        choices=WorkflowType.choices,
        default=WorkflowType.FOUR_STAGE,
        editable=False
    )

    # Actor tracking per stage
    initiated_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='initiated_certificates'
    )
    initiated_at = models.DateTimeField(null=True, blank=True)
    stock_filled_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='stock_filled_certificates'
    )
    stock_filled_at = models.DateTimeField(null=True, blank=True)
    central_register_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='central_register_certificates'
    )
    central_register_at = models.DateTimeField(null=True, blank=True)
    auditor_reviewed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='auditor_reviewed_certificates'
    )
    auditor_reviewed_at = models.DateTimeField(null=True, blank=True)

    rejected_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rejected_certificates'
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, null=True)
    rejection_stage = models.CharField(
        max_length=20,
        choices=InspectionStage.choices,
        null=True,
        blank=True
    )

    stage_history = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = InspectionCertificateManager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['certificate_no'], name='certificate_no_idx'),
            models.Index(fields=['status'], name='certificate_status_idx'),
            models.Index(fields=['stage'], name='certificate_stage_idx'),
            models.Index(fields=['date'], name='certificate_date_idx'),
        ]

    def __str__(self):
        return f"{self.certificate_no} ({self.stage})"

    def save(self, *args, **kwargs):
        if not self.certificate_no:
            self.certificate_no = self.generate_certificate_no()

        if self.stage == InspectionStage.REJECTED:
            self.status = 'CANCELLED'
        elif self.stage == InspectionStage.COMPLETED:
            self.status = 'COMPLETED'
        else:
            self.status = 'IN_PROGRESS'

        super().save(*args, **kwargs)

    def generate_certificate_no(self):
        year_month = timezone.now().strftime('%Y%m')
        last_cert = InspectionCertificate.objects.filter(
            certificate_no__startswith=f"IC-{year_month}"
        ).order_by('-certificate_no').first()

        next_seq = 1
        if last_cert:
            try:
                next_seq = int(last_cert.certificate_no.split('-')[-1]) + 1
            except (ValueError, IndexError):
                next_seq = 1

        return f"IC-{year_month}-{next_seq:05d}"

    def clean(self):
        if self.department_id and not self.department.is_standalone:
            raise ValidationError({
                'department': "Inspection certificates must be for standalone locations only"
            })

    @property
    def is_terminal(self):
        return self.stage in TERMINAL_STAGES

    @property
    def is_three_stage(self):
        return self.workflow_type == WorkflowType.THREE_STAGE

    def get_main_store(self):
        return self.department.get_main_store()

    def transition_stage(self, new_stage, user, rejection_reason=None):
        """
        Move to `new_stage`, recording who did it in the stage history and
        the per-stage actor fields. Callers hold the row lock.
        """
        old_stage = self.stage
        now = timezone.now()
        actor = user if user is not None and user.is_authenticated else None

        if not isinstance(self.stage_history, list):
            self.stage_history = []
        self.stage_history.append({
            'from_stage': old_stage,
            'to_stage': new_stage,
            'user_id': actor.id if actor else None,
            'user_name': (actor.get_full_name() or actor.username) if actor else 'System',
            'timestamp': now.isoformat(),
            'rejection_reason': rejection_reason if new_stage == InspectionStage.REJECTED else None,
        })

        self.stage = new_stage

        if old_stage == InspectionStage.STOCK_DETAILS:
            self.stock_filled_by = actor
            self.stock_filled_at = now
        elif old_stage == InspectionStage.CENTRAL_REGISTER and new_stage != InspectionStage.REJECTED:
            self.central_register_by = actor
            self.central_register_at = now

        if new_stage == InspectionStage.COMPLETED:
            self.auditor_reviewed_by = actor
            self.auditor_reviewed_at = now
        elif new_stage == InspectionStage.REJECTED:
            self.rejected_by = actor
            self.rejected_at = now
            self.rejection_reason = rejection_reason
            self.rejection_stage = old_stage

        self.save()
        return old_stage

    def get_total_items(self):
        return self.inspection_items.count()

    def get_total_accepted(self):
        return sum(item.accepted_quantity for item in self.inspection_items.all())

    def get_total_rejected(self):
        return sum(item.rejected_quantity for item in self.inspection_items.all())


class InspectionItem(models.Model):
    inspection_certificate = models.ForeignKey(
        InspectionCertificate,
        on_delete=models.CASCADE,
        related_name='inspection_items'
    )
    item_description = models.CharField(max_length=255)
    specifications = models.TextField(blank=True, null=True)
    unit = models.CharField(max_length=50, blank=True, default='')
    remarks = models.TextField(blank=True, null=True)

    tendered_quantity = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    delivered_quantity = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    accepted_quantity = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    rejected_quantity = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)]
    )

    # Stock register details
    stock_register_no = models.CharField(max_length=100, blank=True, null=True)
    stock_register_page_no = models.CharField(max_length=50, blank=True, null=True)
    stock_entry_date = models.DateField(null=True, blank=True)

    # Linking and central store register details
    is_item_linked = models.BooleanField(default=False)
    linked_item = models.ForeignKey(
        Item,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='inspection_entries'
    )
    linked_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='linked_inspection_items'
    )
    linked_at = models.DateTimeField(null=True, blank=True)
    central_register_no = models.CharField(max_length=100, blank=True, null=True)
    central_register_page_no = models.CharField(max_length=50, blank=True, null=True)

    # Tracking attributes; only the linked item's tracking type's fields are kept
    batch_number = models.CharField(max_length=100, blank=True, null=True)
    manufacture_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    shelf_life_days = models.PositiveIntegerField(null=True, blank=True)
    manufacturer = models.CharField(max_length=255, blank=True, null=True)
    brand = models.CharField(max_length=150, blank=True, null=True)
    model = models.CharField(max_length=150, blank=True, null=True)
    serial_number = models.CharField(max_length=150, blank=True, null=True)
    warranty_months = models.PositiveIntegerField(null=True, blank=True)
    minimum_stock_level = models.PositiveIntegerField(null=True, blank=True)
    reorder_level = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.item_description} - {self.inspection_certificate.certificate_no}"

    def clean(self):
        if (self.accepted_quantity or 0) + (self.rejected_quantity or 0) > (self.tendered_quantity or 0):
            raise ValidationError(
                "Accepted + Rejected quantity cannot exceed tendered quantity"
            )

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)

    @property
    def tracking_type(self):
        if self.linked_item_id:
            return self.linked_item.tracking_type
        return None
