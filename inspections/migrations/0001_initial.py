import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


STAGE_CHOICES = [
    ('INITIATED', 'Initiated - Basic Info'),
    ('STOCK_DETAILS', 'Stock Details Entry'),
    ('CENTRAL_REGISTER', 'Central Register Entry'),
    ('AUDIT_REVIEW', 'Audit Review'),
    ('COMPLETED', 'Completed'),
    ('REJECTED', 'Rejected'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('inventory', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='InspectionCertificate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('certificate_no', models.CharField(editable=False, max_length=50, unique=True)),
                ('date', models.DateField(blank=True, null=True)),
                ('contract_no', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('contract_date', models.DateField(blank=True, null=True)),
                ('contractor_name', models.CharField(blank=True, default='', max_length=255)),
                ('contractor_address', models.TextField(blank=True, null=True)),
                ('indenter', models.CharField(blank=True, default='', max_length=150)),
                ('indent_no', models.CharField(blank=True, default='', max_length=100)),
                ('date_of_delivery', models.DateField(blank=True, null=True)),
                ('delivery_type', models.CharField(choices=[('PART', 'Part'), ('FULL', 'Full')], default='FULL', max_length=20)),
                ('inspected_by', models.CharField(blank=True, max_length=150, null=True)),
                ('date_of_inspection', models.DateField(blank=True, null=True)),
                ('consignee_name', models.CharField(blank=True, max_length=150, null=True)),
                ('consignee_designation', models.CharField(blank=True, max_length=150, null=True)),
                ('remarks', models.TextField(blank=True, null=True)),
                ('central_store_entry_date', models.DateField(blank=True, null=True)),
                ('finance_check_date', models.DateField(blank=True, null=True)),
                ('stage', models.CharField(choices=STAGE_CHOICES, default='INITIATED', max_length=20)),
                ('status', models.CharField(choices=[('DRAFT', 'Draft'), ('IN_PROGRESS', 'In Progress'), ('CONFIRMED', 'Confirmed'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='IN_PROGRESS', max_length=20)),
                ('workflow_type', models.CharField(choices=[('THREE_STAGE', 'Three Stage (Root Department)'), ('FOUR_STAGE', 'Four Stage')], default='FOUR_STAGE', editable=False, max_length=20)),
                ('initiated_at', models.DateTimeField(blank=True, null=True)),
                ('stock_filled_at', models.DateTimeField(blank=True, null=True)),
                ('central_register_at', models.DateTimeField(blank=True, null=True)),
                ('auditor_reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('rejection_stage', models.CharField(blank=True, choices=STAGE_CHOICES, max_length=20, null=True)),
                ('stage_history', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('auditor_reviewed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='auditor_reviewed_certificates', to=settings.AUTH_USER_MODEL)),
                ('central_register_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='central_register_certificates', to=settings.AUTH_USER_MODEL)),
                ('department', models.ForeignKey(help_text='Must be a standalone location (Department, Main University, etc.)', limit_choices_to={'is_standalone': True}, on_delete=django.db.models.deletion.PROTECT, related_name='department_certificates', to='inventory.location')),
                ('initiated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='initiated_certificates', to=settings.AUTH_USER_MODEL)),
                ('rejected_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='rejected_certificates', to=settings.AUTH_USER_MODEL)),
                ('stock_filled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='stock_filled_certificates', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['certificate_no'], name='certificate_no_idx'),
                    models.Index(fields=['status'], name='certificate_status_idx'),
                    models.Index(fields=['stage'], name='certificate_stage_idx'),
                    models.Index(fields=['date'], name='certificate_date_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InspectionItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('item_description', models.CharField(max_length=255)),
                ('specifications', models.TextField(blank=True, null=True)),
                ('unit', models.CharField(blank=True, default='', max_length=50)),
                ('remarks', models.TextField(blank=True, null=True)),
                ('tendered_quantity', models.PositiveIntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('delivered_quantity', models.PositiveIntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('accepted_quantity', models.PositiveIntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('rejected_quantity', models.PositiveIntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
                ('unit_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(0)])),
                ('stock_register_no', models.CharField(blank=True, max_length=100, null=True)),
                ('stock_register_page_no', models.CharField(blank=True, max_length=50, null=True)),
                ('stock_entry_date', models.DateField(blank=True, null=True)),
                ('is_item_linked', models.BooleanField(default=False)),
                ('linked_at', models.DateTimeField(blank=True, null=True)),
                ('central_register_no', models.CharField(blank=True, max_length=100, null=True)),
                ('central_register_page_no', models.CharField(blank=True, max_length=50, null=True)),
                ('batch_number', models.CharField(blank=True, max_length=100, null=True)),
                ('manufacture_date', models.DateField(blank=True, null=True)),
                ('expiry_date', models.DateField(blank=True, null=True)),
                ('shelf_life_days', models.PositiveIntegerField(blank=True, null=True)),
                ('manufacturer', models.CharField(blank=True, max_length=255, null=True)),
                ('brand', models.CharField(blank=True, max_length=150, null=True)),
                ('model', models.CharField(blank=True, max_length=150, null=True)),
                ('serial_number', models.CharField(blank=True, max_length=150, null=True)),
                ('warranty_months', models.PositiveIntegerField(blank=True, null=True)),
                ('minimum_stock_level', models.PositiveIntegerField(blank=True, null=True)),
                ('reorder_level', models.PositiveIntegerField(blank=True, null=True)),
                ('inspection_certificate', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='inspection_items', to='inspections.inspectioncertificate')),
                ('linked_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='linked_inspection_items', to=settings.AUTH_USER_MODEL)),
                ('linked_item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='inspection_entries', to='inventory.item')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
    ]
