# models.py - organizational units, catalog and stock
import base64
import json
import logging
from decimal import Decimal
from io import BytesIO

import qrcode
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils import timezone

logger = logging.getLogger(__name__)


# ==================== LOCATION MODELS ====================
class LocationType(models.TextChoices):
    DEPARTMENT = 'DEPARTMENT', 'Department'
    BUILDING = 'BUILDING', 'Building'
    STORE = 'STORE', 'Store'
    ROOM = 'ROOM', 'Room'
    LAB = 'LAB', 'Lab'
    OFFICE = 'OFFICE', 'Office'
    OTHER = 'OTHER', 'Other'


class Location(models.Model):
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=255, unique=True)
    parent_location = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='child_locations'
    )
    location_type = models.CharField(
        max_length=20,
        choices=LocationType.choices
    )
    is_store = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    # Standalone locations own a main store and may receive inspection certificates
    is_standalone = models.BooleanField(
        default=False,
        help_text="If true, this location can have sub-locations and will get a main store"
    )
    auto_created_store = models.OneToOneField(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='parent_location_ref'
    )
    is_auto_created = models.BooleanField(default=False)
    is_main_store = models.BooleanField(
        default=False,
        help_text="Indicates if this is the main store for its parent standalone location"
    )

    hierarchy_level = models.PositiveIntegerField(default=0, editable=False)
    hierarchy_path = models.CharField(max_length=765, blank=True, editable=False)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_locations'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['code'], name='location_code_idx'),
            models.Index(fields=['is_standalone'], name='location_standalone_idx'),
            models.Index(fields=['hierarchy_path'], name='location_hierarchy_idx'),
        ]

    def __str__(self):
        return f'{self.name} ({self.code})'

    def clean(self):
        super().clean()

        if not self.parent_location and not self.is_standalone:
            raise ValidationError(
                "Root location (Main University) must be marked as standalone"
            )

        if self.is_store and self.is_standalone:
            raise ValidationError("Store locations cannot be marked as standalone")

        if self.parent_location and self.parent_location.is_store:
            raise ValidationError("Store locations cannot be parent locations")

    def save(self, *args, **kwargs):
        if self.parent_location:
            self.hierarchy_level = self.parent_location.hierarchy_level + 1
            self.hierarchy_path = f"{self.parent_location.hierarchy_path}/{self.code}"
        else:
            self.hierarchy_level = 0
            self.hierarchy_path = self.code

        super().save(*args, **kwargs)

    def get_full_path(self):
        path = [self.name]
        parent = self.parent_location
        while parent:
            path.insert(0, parent.name)
            parent = parent.parent_location
        return ' > '.join(path)

    def get_parent_standalone(self):
        """Nearest standalone location at or above this one."""
        current = self
        while current:
            if current.is_standalone:
                return current
            current = current.parent_location
        return None

    def get_main_store(self):
        """
        Main store for this location's hierarchy.
        - A main store is its own main store
        - A standalone location answers with its auto-created store
        - Anything else defers to its parent standalone location
        """
        if self.is_store and self.is_main_store:
            return self

        parent_standalone = self.get_parent_standalone()
        if parent_standalone and parent_standalone.auto_created_store_id:
            return parent_standalone.auto_created_store

        return None

    def is_descendant_of(self, location):
        return self.hierarchy_path.startswith(f"{location.hierarchy_path}/")


@receiver(post_save, sender=Location)
def auto_create_store_for_standalone(sender, instance, created, **kwargs):
    """Every new standalone location gets its main store."""
    if not (created and instance.is_standalone and not instance.is_store):
        return

    store = Location.objects.create(
        name=f"{instance.name} - Main Store",
        code=f"{instance.code}-MAIN-STORE",
        parent_location=instance,
        location_type=LocationType.STORE,
        is_store=True,
        is_auto_created=True,
        is_main_store=True,
        is_standalone=False,
        created_by=instance.created_by
    )

    instance.auto_created_store = store
    instance.save(update_fields=['auto_created_store'])

    logger.info("Created main store %s for standalone location %s", store.code, instance.code)


# ==================== CATEGORY AND ITEM MODELS ====================
class TrackingType(models.TextChoices):
    INDIVIDUAL = 'INDIVIDUAL', 'Individual (Fixed Asset)'
    BULK = 'BULK', 'Bulk (Consumable)'
    BATCH = 'BATCH', 'Batch (Perishable)'


class DepreciationMethod(models.TextChoices):
    WDV = 'WDV', 'Written Down Value'
    SLM = 'SLM', 'Straight Line'


class Category(models.Model):
    name = models.CharField(max_length=255, unique=True)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True, null=True)
    parent_category = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='subcategories'
    )
    # Only broader (root) categories carry a tracking type; sub-categories inherit it
    tracking_type = models.CharField(
        max_length=20,
        choices=TrackingType.choices,
        null=True,
        blank=True
    )
    depreciation_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Annual depreciation rate in percentage (e.g., 10.00 for 10%)"
    )
    depreciation_method = models.CharField(
        max_length=10,
        choices=DepreciationMethod.choices,
        null=True,
        blank=True
    )
    is_active = models.BooleanField(default=True)

    # Provenance: set when the category was created on-the-fly while linking a certificate
    created_by_certificate = models.ForeignKey(
        'inspections.InspectionCertificate',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='provisional_categories'
    )
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_categories'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = 'Categories'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} - {self.code}"

    def clean(self):
        super().clean()
        if self.parent_category_id is None and not self.tracking_type:
            raise ValidationError({'tracking_type': "Broader categories must define a tracking type"})
        if self.parent_category and self.parent_category.parent_category_id is not None:
            raise ValidationError({'parent_category': "Sub-categories can only be created under broader categories"})

    @property
    def is_broader_category(self):
        return self.parent_category_id is None

    @property
    def is_sub_category(self):
        return self.parent_category_id is not None

    @property
    def effective_tracking_type(self):
        """Tracking type of a sub-category comes from its broader category."""
        if self.parent_category_id is not None:
            return self.parent_category.tracking_type
        return self.tracking_type


class Item(models.Model):
    name = models.CharField(max_length=150)
    code = models.CharField(max_length=50, unique=True, blank=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='items')
    description = models.TextField(blank=True, null=True)
    acct_unit = models.CharField(max_length=255, help_text="Accounting unit/measurement")
    specifications = models.TextField(blank=True, null=True)

    default_location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        related_name='default_items',
        limit_choices_to={'is_standalone': True},
        help_text="Must be a standalone location (Department, Main University, etc.)"
    )

    shelf_life_days = models.PositiveIntegerField(null=True, blank=True)
    total_quantity = models.PositiveIntegerField(default=0)
    reorder_level = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_by_certificate = models.ForeignKey(
        'inspections.InspectionCertificate',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='provisional_items'
    )
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_items'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['code'], name='item_code_idx'),
            models.Index(fields=['category'], name='item_category_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"

    def clean(self):
        if self.default_location_id and not self.default_location.is_standalone:
            raise ValidationError({
                'default_location': "Items must belong to a standalone location (Department, Main University, etc.)"
            })
        if self.category_id and not self.category.is_sub_category:
            raise ValidationError({
                'category': "Items must be created under a sub-category, not a broader category"
            })

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = self.generate_code()
        super().save(*args, **kwargs)

    def generate_code(self):
        prefix = (self.category.code if self.category_id else 'ITEM').upper()
        last_item = Item.objects.filter(code__startswith=f"{prefix}-").order_by('-id').first()

        next_seq = 1
        if last_item:
            try:
                next_seq = int(last_item.code.split('-')[-1]) + 1
            except (ValueError, IndexError):
                next_seq = Item.objects.filter(code__startswith=f"{prefix}-").count() + 1

        return f"{prefix}-{next_seq:04d}"

    @property
    def tracking_type(self):
        return self.category.effective_tracking_type

    def update_total_quantity(self):
        received = self.stock_entries.filter(
            entry_type=StockEntry.RECEIPT,
            status=StockEntry.COMPLETED
        ).aggregate(total=models.Sum('quantity'))['total'] or 0
        self.total_quantity = received
        self.save(update_fields=['total_quantity'])


# ==================== STOCK ENTRY MODEL ====================
class StockEntry(models.Model):
    RECEIPT = 'RECEIPT'
    ISSUE = 'ISSUE'
    ENTRY_TYPE_CHOICES = [
        (RECEIPT, 'Receipt'),
        (ISSUE, 'Issue'),
    ]

    DRAFT = 'DRAFT'
    COMPLETED = 'COMPLETED'
    STATUS_CHOICES = [
        (DRAFT, 'Draft'),
        (COMPLETED, 'Completed'),
    ]

    entry_type = models.CharField(max_length=20, choices=ENTRY_TYPE_CHOICES)
    entry_number = models.CharField(max_length=50, unique=True, blank=True)
    entry_date = models.DateTimeField(default=timezone.now)
    to_location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        related_name='incoming_entries'
    )
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='stock_entries')
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    inspection_certificate = models.ForeignKey(
        'inspections.InspectionCertificate',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='stock_entries'
    )
    inspection_item = models.ForeignKey(
        'inspections.InspectionItem',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='stock_entries'
    )

    # Batch data copied from the inspection line (BATCH / BULK items)
    batch_number = models.CharField(max_length=100, blank=True, null=True)
    manufacture_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=DRAFT)
    purpose = models.CharField(max_length=255, blank=True, null=True)
    remarks = models.TextField(blank=True, null=True)
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_entries'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = 'Stock Entries'
        ordering = ['-entry_date', '-created_at']
        indexes = [
            models.Index(fields=['entry_number'], name='stockentry_number_idx'),
            models.Index(fields=['entry_type'], name='stockentry_type_idx'),
            models.Index(fields=['status'], name='stockentry_status_idx'),
        ]

    def __str__(self):
        return f"{self.entry_number} ({self.entry_type})"

    def save(self, *args, **kwargs):
        if not self.entry_number:
            self.entry_number = self.generate_entry_number()
        super().save(*args, **kwargs)

    def generate_entry_number(self):
        today = timezone.now().strftime('%Y%m%d')
        last_entry = StockEntry.objects.filter(
            entry_type=self.entry_type
        ).order_by('-id').first()

        last_seq = 0
        if last_entry and last_entry.entry_number:
            try:
                last_seq = int(last_entry.entry_number.split('-')[-1])
            except (ValueError, IndexError):
                last_seq = 0

        return f"{self.entry_type}-{today}-{last_seq + 1:04d}"


# ==================== ITEM INSTANCE MODEL ====================
class InstanceStatus(models.TextChoices):
    IN_STORE = 'IN_STORE', 'In Store'
    IN_USE = 'IN_USE', 'In Use'
    DISPOSED = 'DISPOSED', 'Disposed'


class ItemInstance(models.Model):
    """One physical unit of an INDIVIDUAL-tracked item."""
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='instances')
    stock_entry = models.ForeignKey(
        StockEntry,
        on_delete=models.PROTECT,
        related_name='instances'
    )
    inspection_certificate = models.ForeignKey(
        'inspections.InspectionCertificate',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='instances'
    )
    instance_code = models.CharField(max_length=50, unique=True, editable=False)
    current_status = models.CharField(
        max_length=20,
        choices=InstanceStatus.choices,
        default=InstanceStatus.IN_STORE
    )
    current_location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        related_name='current_instances'
    )

    brand = models.CharField(max_length=150, blank=True, null=True)
    model = models.CharField(max_length=150, blank=True, null=True)
    serial_number = models.CharField(max_length=150, blank=True, null=True)
    purchase_date = models.DateField(null=True, blank=True)
    purchase_value = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    warranty_expiry = models.DateField(null=True, blank=True)

    qr_code_data = models.TextField(blank=True, null=True)
    qr_data_json = models.JSONField(default=dict, blank=True)
    qr_generated = models.BooleanField(default=False)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_instances'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['instance_code'], name='instance_code_idx'),
            models.Index(fields=['item'], name='instance_item_idx'),
        ]

    def __str__(self):
        return f"{self.instance_code} ({self.get_current_status_display()})"

    def save(self, *args, **kwargs):
        if not self.instance_code:
            self.instance_code = self.generate_instance_code()
        if not self.qr_generated:
            self.generate_qr_code()
        super().save(*args, **kwargs)

    def generate_instance_code(self):
        year = timezone.now().year
        last_instance = ItemInstance.objects.filter(
            item=self.item,
            instance_code__startswith=f"{self.item.code}-{year}"
        ).order_by('-id').first()

        new_seq = 1
        if last_instance:
            try:
                new_seq = int(last_instance.instance_code.split('-')[-1]) + 1
            except (ValueError, IndexError):
                new_seq = 1

        return f"{self.item.code}-{year}-{new_seq:04d}"

    def generate_qr_code(self):
        """Encode the instance summary as a PNG QR code (data URI)."""
        qr_data = {
            'instance_code': self.instance_code,
            'item_name': self.item.name,
            'item_code': self.item.code,
            'category': self.item.category.name,
            'current_location': self.current_location.name,
            'brand': self.brand,
            'model': self.model,
            'serial_number': self.serial_number,
            'purchase_date': str(self.purchase_date) if self.purchase_date else None,
            'warranty_expiry': str(self.warranty_expiry) if self.warranty_expiry else None,
            'inspection_certificate': (
                self.inspection_certificate.certificate_no if self.inspection_certificate else None
            ),
        }
        self.qr_data_json = qr_data

        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(json.dumps(qr_data))
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = BytesIO()
        img.save(buffer, format='PNG')
        img_str = base64.b64encode(buffer.getvalue()).decode()

        self.qr_code_data = f"data:image/png;base64,{img_str}"
        self.qr_generated = True
