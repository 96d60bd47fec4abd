import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Location',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('code', models.CharField(max_length=255, unique=True)),
                ('location_type', models.CharField(choices=[('DEPARTMENT', 'Department'), ('BUILDING', 'Building'), ('STORE', 'Store'), ('ROOM', 'Room'), ('LAB', 'Lab'), ('OFFICE', 'Office'), ('OTHER', 'Other')], max_length=20)),
                ('is_store', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('is_standalone', models.BooleanField(default=False, help_text='If true, this location can have sub-locations and will get a main store')),
                ('is_auto_created', models.BooleanField(default=False)),
                ('is_main_store', models.BooleanField(default=False, help_text='Indicates if this is the main store for its parent standalone location')),
                ('hierarchy_level', models.PositiveIntegerField(default=0, editable=False)),
                ('hierarchy_path', models.CharField(blank=True, editable=False, max_length=765)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('auto_created_store', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='parent_location_ref', to='inventory.location')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_locations', to=settings.AUTH_USER_MODEL)),
                ('parent_location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='child_locations', to='inventory.location')),
            ],
            options={
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['code'], name='location_code_idx'),
                    models.Index(fields=['is_standalone'], name='location_standalone_idx'),
                    models.Index(fields=['hierarchy_path'], name='location_hierarchy_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, unique=True)),
                ('code', models.CharField(max_length=20, unique=True)),
                ('description', models.TextField(blank=True, null=True)),
                ('tracking_type', models.CharField(blank=True, choices=[('INDIVIDUAL', 'Individual (Fixed Asset)'), ('BULK', 'Bulk (Consumable)'), ('BATCH', 'Batch (Perishable)')], max_length=20, null=True)),
                ('depreciation_rate', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Annual depreciation rate in percentage (e.g., 10.00 for 10%)', max_digits=5)),
                ('depreciation_method', models.CharField(blank=True, choices=[('WDV', 'Written Down Value'), ('SLM', 'Straight Line')], max_length=10, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_categories', to=settings.AUTH_USER_MODEL)),
                ('parent_category', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='subcategories', to='inventory.category')),
            ],
            options={
                'verbose_name_plural': 'Categories',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150)),
                ('code', models.CharField(blank=True, max_length=50, unique=True)),
                ('description', models.TextField(blank=True, null=True)),
                ('acct_unit', models.CharField(help_text='Accounting unit/measurement', max_length=255)),
                ('specifications', models.TextField(blank=True, null=True)),
                ('shelf_life_days', models.PositiveIntegerField(blank=True, null=True)),
                ('total_quantity', models.PositiveIntegerField(default=0)),
                ('reorder_level', models.PositiveIntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='items', to='inventory.category')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_items', to=settings.AUTH_USER_MODEL)),
                ('default_location', models.ForeignKey(help_text='Must be a standalone location (Department, Main University, etc.)', limit_choices_to={'is_standalone': True}, on_delete=django.db.models.deletion.PROTECT, related_name='default_items', to='inventory.location')),
            ],
            options={
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['code'], name='item_code_idx'),
                    models.Index(fields=['category'], name='item_category_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('entry_type', models.CharField(choices=[('RECEIPT', 'Receipt'), ('ISSUE', 'Issue')], max_length=20)),
                ('entry_number', models.CharField(blank=True, max_length=50, unique=True)),
                ('entry_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('batch_number', models.CharField(blank=True, max_length=100, null=True)),
                ('manufacture_date', models.DateField(blank=True, null=True)),
                ('expiry_date', models.DateField(blank=True, null=True)),
                ('status', models.CharField(choices=[('DRAFT', 'Draft'), ('COMPLETED', 'Completed')], default='DRAFT', max_length=20)),
                ('purpose', models.CharField(blank=True, max_length=255, null=True)),
                ('remarks', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_entries', to=settings.AUTH_USER_MODEL)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='stock_entries', to='inventory.item')),
                ('to_location', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='incoming_entries', to='inventory.location')),
            ],
            options={
                'verbose_name_plural': 'Stock Entries',
                'ordering': ['-entry_date', '-created_at'],
                'indexes': [
                    models.Index(fields=['entry_number'], name='stockentry_number_idx'),
                    models.Index(fields=['entry_type'], name='stockentry_type_idx'),
                    models.Index(fields=['status'], name='stockentry_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ItemInstance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('instance_code', models.CharField(editable=False, max_length=50, unique=True)),
                ('current_status', models.CharField(choices=[('IN_STORE', 'In Store'), ('IN_USE', 'In Use'), ('DISPOSED', 'Disposed')], default='IN_STORE', max_length=20)),
                ('brand', models.CharField(blank=True, max_length=150, null=True)),
                ('model', models.CharField(blank=True, max_length=150, null=True)),
                ('serial_number', models.CharField(blank=True, max_length=150, null=True)),
                ('purchase_date', models.DateField(blank=True, null=True)),
                ('purchase_value', models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ('warranty_expiry', models.DateField(blank=True, null=True)),
                ('qr_code_data', models.TextField(blank=True, null=True)),
                ('qr_data_json', models.JSONField(blank=True, default=dict)),
                ('qr_generated', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_instances', to=settings.AUTH_USER_MODEL)),
                ('current_location', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='current_instances', to='inventory.location')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='instances', to='inventory.item')),
                ('stock_entry', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='instances', to='inventory.stockentry')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['instance_code'], name='instance_code_idx'),
                    models.Index(fields=['item'], name='instance_item_idx'),
                ],
            },
        ),
    ]
