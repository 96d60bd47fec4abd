import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('inventory', '0001_initial'),
        ('inspections', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='category',
            name='created_by_certificate',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='provisional_categories', to='inspections.inspectioncertificate'),
        ),
        migrations.AddField(
            model_name='item',
            name='created_by_certificate',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='provisional_items', to='inspections.inspectioncertificate'),
        ),
        migrations.AddField(
            model_name='stockentry',
            name='inspection_certificate',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='stock_entries', to='inspections.inspectioncertificate'),
        ),
        migrations.AddField(
            model_name='stockentry',
            name='inspection_item',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='stock_entries', to='inspections.inspectionitem'),
        ),
        migrations.AddField(
            model_name='iteminstance',
            name='inspection_certificate',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='instances', to='inspections.inspectioncertificate'),
        ),
    ]
