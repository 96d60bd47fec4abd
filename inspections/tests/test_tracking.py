from datetime import date

from django.test import SimpleTestCase

from inspections.exceptions import ValidationError
from inspections.tracking import (
    TRACKING_ATTRIBUTE_FIELDS, allowed_fields_for, derive_expiry_date, missing_fields,
    required_fields_for, resolve_tracking_attributes, validate_link_attributes
)
from inventory.models import TrackingType


class TrackingRulesTest(SimpleTestCase):
    def test_required_fields_per_tracking_type(self):
        self.assertEqual(
            required_fields_for(TrackingType.BATCH, 5),
            {'batch_number', 'expiry_date', 'manufacture_date', 'manufacturer'},
        )
        self.assertEqual(required_fields_for(TrackingType.BULK, 1), {'batch_number', 'manufacturer'})
        self.assertEqual(required_fields_for(TrackingType.INDIVIDUAL, 2), {'brand', 'model'})

    def test_rejected_only_lines_need_nothing(self):
        self.assertEqual(required_fields_for(TrackingType.BATCH, 0), frozenset())
        self.assertEqual(missing_fields(TrackingType.INDIVIDUAL, 0, {}), [])

    def test_allowed_fields_include_optional(self):
        self.assertEqual(
            allowed_fields_for(TrackingType.INDIVIDUAL),
            {'brand', 'model', 'manufacturer', 'serial_number', 'warranty_months'},
        )

    def test_unknown_tracking_type(self):
        with self.assertRaises(ValidationError) as ctx:
            allowed_fields_for('PERISHABLE')
        self.assertIn('tracking_type', ctx.exception.fields)

    def test_missing_fields_reports_every_field_sorted(self):
        missing = missing_fields(TrackingType.BATCH, 5, {'batch_number': '  '})
        self.assertEqual(missing, ['batch_number', 'expiry_date', 'manufacture_date', 'manufacturer'])

    def test_derive_expiry_date(self):
        self.assertEqual(derive_expiry_date(date(2024, 1, 1), 30), date(2024, 1, 31))
        self.assertIsNone(derive_expiry_date(None, 30))
        self.assertIsNone(derive_expiry_date(date(2024, 1, 1), None))


class ResolveTrackingAttributesTest(SimpleTestCase):
    def test_drops_fields_outside_tracking_type(self):
        resolved = resolve_tracking_attributes(
            TrackingType.INDIVIDUAL,
            {'brand': 'HP', 'model': 'ProBook', 'batch_number': 'B-1', 'expiry_date': '2025-01-01'},
        )
        self.assertEqual(set(resolved), set(TRACKING_ATTRIBUTE_FIELDS))
        self.assertEqual(resolved['brand'], 'HP')
        self.assertIsNone(resolved['batch_number'])
        self.assertIsNone(resolved['expiry_date'])

    def test_coerces_dates_and_counts(self):
        resolved = resolve_tracking_attributes(
            TrackingType.INDIVIDUAL, {'brand': ' HP ', 'model': 'X', 'warranty_months': '24'}
        )
        self.assertEqual(resolved['brand'], 'HP')
        self.assertEqual(resolved['warranty_months'], 24)

    def test_expiry_derived_from_line_shelf_life_first(self):
        resolved = resolve_tracking_attributes(
            TrackingType.BATCH,
            {'manufacture_date': '2024-03-01', 'shelf_life_days': 10},
            shelf_life_days=365,
        )
        self.assertEqual(resolved['expiry_date'], date(2024, 3, 11))

    def test_expiry_derived_from_catalog_shelf_life(self):
        resolved = resolve_tracking_attributes(
            TrackingType.BATCH, {'manufacture_date': date(2024, 3, 1)}, shelf_life_days=30
        )
        self.assertEqual(resolved['expiry_date'], date(2024, 3, 31))

    def test_explicit_expiry_wins(self):
        resolved = resolve_tracking_attributes(
            TrackingType.BATCH,
            {'manufacture_date': '2024-03-01', 'expiry_date': '2024-12-31'},
            shelf_life_days=30,
        )
        self.assertEqual(resolved['expiry_date'], date(2024, 12, 31))

    def test_malformed_values_are_all_reported(self):
        with self.assertRaises(ValidationError) as ctx:
            resolve_tracking_attributes(
                TrackingType.BATCH,
                {'manufacture_date': '01/03/2024', 'shelf_life_days': '-5', 'batch_number': 'B1'},
            )
        self.assertEqual(set(ctx.exception.fields), {'manufacture_date', 'shelf_life_days'})

    def test_validate_link_attributes_lists_missing_fields(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_link_attributes(
                TrackingType.BATCH, 5,
                {'batch_number': 'B-9', 'manufacture_date': '2024-01-01', 'manufacturer': 'Cipla'},
            )
        self.assertEqual(ctx.exception.missing_fields, ['expiry_date'])
        self.assertIn('expiry_date', ctx.exception.message)

    def test_validate_link_attributes_returns_resolved(self):
        resolved = validate_link_attributes(
            TrackingType.BULK, 3, {'batch_number': 'LOT-1', 'manufacturer': 'JK Paper', 'model': 'X'}
        )
        self.assertEqual(resolved['batch_number'], 'LOT-1')
        self.assertIsNone(resolved['model'])
