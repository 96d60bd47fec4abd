from datetime import date

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase

from inspections.exceptions import (
    ConflictError, LinkingIncompleteError, NotFoundError, TerminalStateError, ValidationError
)
from inspections.models import STAGE_ORDER, InspectionItem, InspectionStage, WorkflowType
from inspections.workflow import WorkflowEngine
from inventory import services
from inventory.models import Category, Item, ItemInstance, StockEntry
from user_management.models import UserActivity

from .base import InspectionFixturesMixin


class CertificateCreationTest(InspectionFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_create_starts_in_initiated(self):
        certificate = self.make_certificate()
        self.assertEqual(certificate.stage, InspectionStage.INITIATED)
        self.assertEqual(certificate.status, 'IN_PROGRESS')
        self.assertEqual(certificate.workflow_type, WorkflowType.FOUR_STAGE)
        self.assertRegex(certificate.certificate_no, r'^IC-\d{6}-\d{5}$')
        self.assertEqual(certificate.initiated_by, self.location_head)
        self.assertEqual(certificate.inspection_items.count(), 1)
        self.assertTrue(UserActivity.objects.filter(
            action='CREATE_INSPECTION_CERTIFICATE', object_id=certificate.id
        ).exists())

    def test_root_department_gets_three_stage_workflow(self):
        certificate = self.make_certificate(department=self.root)
        self.assertEqual(certificate.workflow_type, WorkflowType.THREE_STAGE)

    def test_department_must_be_standalone(self):
        with self.assertRaises(ValidationError) as ctx:
            self.make_certificate(department=self.lab)
        self.assertIn('department', ctx.exception.fields)

    def test_department_is_required(self):
        with self.assertRaises(ValidationError) as ctx:
            self.engine.create({'contractor_name': 'Acme'}, items=[], user=self.location_head)
        self.assertEqual(ctx.exception.missing_fields, ['department'])

    def test_unknown_department(self):
        with self.assertRaises(NotFoundError):
            self.engine.create({'department': 99999}, user=self.location_head)

    def test_contract_no_must_be_unique(self):
        self.make_certificate(contract_no='CN-DUP')
        with self.assertRaises(ValidationError) as ctx:
            self.make_certificate(contract_no='CN-DUP')
        self.assertIn('contract_no', ctx.exception.fields)

    def test_items_are_validated_together(self):
        with self.assertRaises(ValidationError) as ctx:
            self.make_certificate(items=[
                self.line_data(),
                self.line_data(description='', tendered=5, accepted=1),
                self.line_data(tendered='lots'),
            ])
        self.assertIn('inspection_items[1].item_description', ctx.exception.fields)
        self.assertIn('inspection_items[2].tendered_quantity', ctx.exception.fields)
        self.assertFalse(InspectionItem.objects.exists())


class QuantityInvariantTest(InspectionFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_create_rejects_over_acceptance(self):
        with self.assertRaises(ValidationError) as ctx:
            self.make_certificate(items=[self.line_data(tendered=10, accepted=8, rejected=5)])
        self.assertIn('inspection_items[0].accepted_quantity', ctx.exception.fields)

    def test_negative_quantities_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.make_certificate(items=[self.line_data(tendered=10, accepted=-1)])
        self.assertIn('inspection_items[0].accepted_quantity', ctx.exception.fields)

    def test_patch_rechecks_against_stored_quantities(self):
        certificate = self.make_certificate(items=[self.line_data(tendered=10, accepted=6, rejected=4)])
        line = self.lines(certificate)[0]

        with self.assertRaises(ValidationError) as ctx:
            self.engine.patch(
                certificate.id,
                {'inspection_items': [{'id': line.id, 'accepted_quantity': 7}]},
                user=self.location_head,
            )
        self.assertIn('inspection_items[0].accepted_quantity', ctx.exception.fields)

        line.refresh_from_db()
        self.assertEqual(line.accepted_quantity, 6)

    def test_model_save_enforces_invariant(self):
        certificate = self.make_certificate()
        line = self.lines(certificate)[0]
        line.rejected_quantity = 1
        with self.assertRaises(DjangoValidationError):
            line.save()


class PatchGatingTest(InspectionFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.certificate = self.make_certificate(items=[
            self.line_data(),
            self.line_data(description='A4 paper', tendered=20, accepted=15, rejected=5),
        ])

    def test_initiated_allows_header_and_new_items(self):
        certificate = self.engine.patch(
            self.certificate.id,
            {
                'contractor_name': 'Globex Traders',
                'inspection_items': [self.line_data(description='Projector', tendered=1, accepted=1)],
            },
            user=self.location_head,
        )
        self.assertEqual(certificate.contractor_name, 'Globex Traders')
        self.assertEqual(certificate.inspection_items.count(), 3)

    def test_stock_details_rejects_header_and_basic_fields(self):
        self.engine.submit_to_stock_incharge(self.certificate.id, user=self.location_head)
        line = self.lines(self.certificate)[0]

        with self.assertRaises(ValidationError) as ctx:
            self.engine.patch(
                self.certificate.id,
                {
                    'contractor_name': 'Changed',
                    'inspection_items': [{'id': line.id, 'accepted_quantity': 1, 'stock_register_no': 'SR-1'}],
                },
                user=self.store_incharge,
            )
        self.assertEqual(
            set(ctx.exception.fields),
            {'contractor_name', 'inspection_items[0].accepted_quantity'},
        )
        line.refresh_from_db()
        self.assertIsNone(line.stock_register_no)

    def test_items_cannot_be_added_after_initiation(self):
        self.engine.submit_to_stock_incharge(self.certificate.id, user=self.location_head)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.patch(
                self.certificate.id,
                {'inspection_items': [self.line_data(description='Extra')]},
                user=self.store_incharge,
            )
        self.assertIn('inspection_items[0]', ctx.exception.fields)

    def test_central_register_fields_need_a_linked_line(self):
        certificate = self.advance_to_central_register(self.certificate)
        first, second = self.lines(certificate)
        self.link_line(certificate, first)

        certificate = self.engine.patch(
            certificate.id,
            {
                'central_store_entry_date': '2024-02-01',
                'inspection_items': [
                    {'id': first.id, 'central_register_no': 'CDS-1', 'central_register_page_no': '9'}
                ],
            },
            user=self.central_incharge,
        )
        self.assertEqual(certificate.central_store_entry_date, date(2024, 2, 1))
        first.refresh_from_db()
        self.assertEqual(first.central_register_no, 'CDS-1')

        with self.assertRaises(ValidationError) as ctx:
            self.engine.patch(
                certificate.id,
                {'inspection_items': [{'id': second.id, 'central_register_no': 'CDS-2'}]},
                user=self.central_incharge,
            )
        self.assertIn('inspection_items[0].central_register_no', ctx.exception.fields)

    def test_audit_review_allows_finance_check_date_only(self):
        certificate = self.advance_to_audit_review(self.certificate)
        certificate = self.engine.patch(
            certificate.id, {'finance_check_date': '2024-02-10'}, user=self.auditor
        )
        self.assertEqual(certificate.finance_check_date, date(2024, 2, 10))

        with self.assertRaises(ValidationError) as ctx:
            self.engine.patch(certificate.id, {'remarks': 'late'}, user=self.auditor)
        self.assertIn('remarks', ctx.exception.fields)

    def test_stale_expected_stage_conflicts(self):
        with self.assertRaises(ConflictError) as ctx:
            self.engine.patch(
                self.certificate.id, {'remarks': 'x'},
                user=self.location_head, expected_stage=InspectionStage.STOCK_DETAILS,
            )
        self.assertEqual(ctx.exception.current_stage, InspectionStage.INITIATED)
        self.assertEqual(ctx.exception.status_code, 409)

    def test_unknown_line_id(self):
        with self.assertRaises(NotFoundError):
            self.engine.patch(
                self.certificate.id,
                {'inspection_items': [{'id': 424242, 'unit': 'Box'}]},
                user=self.location_head,
            )


class StageTransitionTest(InspectionFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_scenario_a_four_stage_goes_to_stock_details(self):
        certificate = self.make_certificate(items=[self.line_data(tendered=10, accepted=10, rejected=0)])
        certificate = self.engine.submit_to_stock_incharge(certificate.id, user=self.location_head)
        self.assertEqual(certificate.stage, InspectionStage.STOCK_DETAILS)

    def test_scenario_b_root_department_skips_stock_details(self):
        certificate = self.make_certificate(department=self.root)
        certificate = self.engine.submit_to_stock_incharge(certificate.id, user=self.root_head)
        self.assertEqual(certificate.stage, InspectionStage.CENTRAL_REGISTER)
        visited = [entry['to_stage'] for entry in certificate.stage_history]
        self.assertNotIn(InspectionStage.STOCK_DETAILS, visited)

    def test_three_stage_refuses_stock_details_submission(self):
        certificate = self.make_certificate(department=self.root)
        self.engine.submit_to_stock_incharge(certificate.id, user=self.root_head)
        with self.assertRaises(ConflictError):
            self.engine.submit_stock_details(certificate.id, user=self.store_incharge)

    def test_workflow_type_is_not_recomputed(self):
        certificate = self.make_certificate()
        self.department.parent_location = None
        self.department.save()
        certificate = self.engine.submit_to_stock_incharge(certificate.id, user=self.location_head)
        self.assertEqual(certificate.stage, InspectionStage.STOCK_DETAILS)

    def test_moving_to_root_department_skips_stock_details(self):
        certificate = self.make_certificate()
        certificate = self.engine.patch(
            certificate.id, {'department': self.root.id}, user=self.admin
        )
        self.assertEqual(certificate.workflow_type, WorkflowType.THREE_STAGE)

        certificate = self.engine.submit_to_stock_incharge(certificate.id, user=self.admin)
        self.assertEqual(certificate.stage, InspectionStage.CENTRAL_REGISTER)
        self.assertIsNone(certificate.stock_filled_by)

    def test_moving_away_from_root_restores_four_stages(self):
        certificate = self.make_certificate(department=self.root)
        self.assertEqual(certificate.workflow_type, WorkflowType.THREE_STAGE)

        certificate = self.engine.patch(
            certificate.id, {'department': self.department.id}, user=self.admin
        )
        self.assertEqual(self.reload(certificate).workflow_type, WorkflowType.FOUR_STAGE)
        certificate = self.engine.submit_to_stock_incharge(certificate.id, user=self.location_head)
        self.assertEqual(certificate.stage, InspectionStage.STOCK_DETAILS)

    def test_submit_lists_every_missing_header_field(self):
        certificate = self.engine.create(
            {'department': self.department.id}, items=[], user=self.location_head
        )
        with self.assertRaises(ValidationError) as ctx:
            self.engine.submit_to_stock_incharge(certificate.id, user=self.location_head)
        self.assertEqual(ctx.exception.missing_fields, [
            'consignee_designation', 'consignee_name', 'contract_no', 'contractor_name',
            'date', 'indent_no', 'indenter', 'inspection_items',
        ])
        self.assertEqual(self.reload(certificate).stage, InspectionStage.INITIATED)

    def test_stock_details_requires_registers_on_accepted_lines(self):
        certificate = self.make_certificate(items=[
            self.line_data(),
            self.line_data(description='Broken chairs', tendered=4, accepted=0, rejected=4),
        ])
        self.engine.submit_to_stock_incharge(certificate.id, user=self.location_head)
        accepted, rejected = self.lines(certificate)

        with self.assertRaises(ValidationError) as ctx:
            self.engine.submit_stock_details(certificate.id, user=self.store_incharge)
        self.assertEqual(list(ctx.exception.fields), [f'inspection_items[{accepted.id}]'])
        self.assertEqual(
            ctx.exception.fields[f'inspection_items[{accepted.id}]'],
            ['stock_register_no', 'stock_register_page_no', 'stock_entry_date'],
        )

        self.engine.patch(
            certificate.id,
            {'inspection_items': [{
                'id': accepted.id, 'stock_register_no': 'SR-1',
                'stock_register_page_no': '3', 'stock_entry_date': '2024-01-21',
            }]},
            user=self.store_incharge,
        )
        certificate = self.engine.submit_stock_details(certificate.id, user=self.store_incharge)
        self.assertEqual(certificate.stage, InspectionStage.CENTRAL_REGISTER)
        self.assertEqual(certificate.stock_filled_by, self.store_incharge)

    def test_scenario_c_linking_gate_reports_unlinked_count(self):
        certificate = self.make_certificate(items=[
            self.line_data(),
            self.line_data(description='Desktop', tendered=5, accepted=5),
        ])
        certificate = self.advance_to_central_register(certificate)
        self.link_line(certificate, self.lines(certificate)[0])

        with self.assertRaises(LinkingIncompleteError) as ctx:
            self.engine.submit_central_register(certificate.id, user=self.central_incharge)
        self.assertEqual(ctx.exception.unlinked_count, 1)
        self.assertEqual(ctx.exception.examples, ['Desktop'])
        self.assertTrue(ctx.exception.hint)
        self.assertEqual(self.reload(certificate).stage, InspectionStage.CENTRAL_REGISTER)

    def test_fully_rejected_lines_do_not_block_the_gate(self):
        certificate = self.make_certificate(items=[
            self.line_data(),
            self.line_data(description='Broken chairs', tendered=4, accepted=0, rejected=4),
        ])
        certificate = self.advance_to_central_register(certificate)
        self.link_line(certificate, self.lines(certificate)[0])

        certificate = self.engine.submit_central_register(certificate.id, user=self.central_incharge)
        self.assertEqual(certificate.stage, InspectionStage.AUDIT_REVIEW)
        self.assertEqual(certificate.central_register_by, self.central_incharge)

    def test_stages_only_move_forward(self):
        certificate = self.complete(self.make_certificate())
        stages = [entry['from_stage'] for entry in certificate.stage_history]
        stages.append(certificate.stage_history[-1]['to_stage'])
        self.assertEqual(stages, [str(stage) for stage in STAGE_ORDER])
        self.assertEqual(
            [STAGE_ORDER.index(stage) for stage in stages],
            sorted(STAGE_ORDER.index(stage) for stage in stages),
        )

    def test_out_of_order_transitions_conflict(self):
        certificate = self.make_certificate()
        with self.assertRaises(ConflictError):
            self.engine.submit_central_register(certificate.id, user=self.central_incharge)
        with self.assertRaises(ConflictError):
            self.engine.submit_audit_review(certificate.id, user=self.auditor)

        self.engine.submit_to_stock_incharge(certificate.id, user=self.location_head)
        with self.assertRaises(ConflictError):
            self.engine.submit_to_stock_incharge(certificate.id, user=self.location_head)


class AuditReviewTest(InspectionFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_scenario_e_one_stock_entry_per_linked_line(self):
        certificate = self.make_certificate(items=[
            self.line_data(tendered=3, accepted=3),
            self.line_data(description='Laptop (spare)', tendered=2, accepted=2),
            self.line_data(description='Damaged', tendered=1, accepted=0, rejected=1),
        ])
        certificate = self.advance_to_audit_review(certificate)

        certificate, entries = self.engine.submit_audit_review(certificate.id, user=self.auditor)

        self.assertEqual(certificate.stage, InspectionStage.COMPLETED)
        self.assertEqual(certificate.status, 'COMPLETED')
        self.assertEqual(certificate.auditor_reviewed_by, self.auditor)
        self.assertEqual(len(entries), 2)
        self.assertEqual(StockEntry.objects.filter(inspection_certificate=certificate).count(), 2)
        for entry in entries:
            self.assertEqual(entry.to_location, self.department_store)
            self.assertEqual(entry.status, StockEntry.COMPLETED)
            self.assertEqual(entry.entry_type, StockEntry.RECEIPT)

        self.assertEqual(ItemInstance.objects.filter(inspection_certificate=certificate).count(), 5)
        self.laptop.refresh_from_db()
        self.assertEqual(self.laptop.total_quantity, 5)

    def test_batch_data_copied_onto_receipt(self):
        certificate = self.make_certificate(items=[self.line_data(description='Paracetamol 500mg')])
        certificate = self.advance_to_central_register(certificate)
        self.link_line(
            certificate, self.lines(certificate)[0], item=self.paracetamol,
            batch_number='PCM-77', manufacture_date='2024-01-01', manufacturer='Cipla',
        )
        self.engine.submit_central_register(certificate.id, user=self.central_incharge)

        _, entries = self.engine.approve(certificate.id, user=self.auditor)

        entry = entries[0]
        self.assertEqual(entry.batch_number, 'PCM-77')
        self.assertEqual(entry.expiry_date, date(2024, 12, 31))
        self.assertFalse(entry.instances.exists())

    def test_stock_failure_rolls_back_completion(self):
        class FailingStock:
            resolve_receiving_store = staticmethod(services.resolve_receiving_store)

            def create_stock_entry(self, *args, **kwargs):
                raise RuntimeError('stock ledger unavailable')

        certificate = self.advance_to_audit_review(self.make_certificate())
        engine = WorkflowEngine(stock_service=FailingStock())

        with self.assertRaises(RuntimeError):
            engine.submit_audit_review(certificate.id, user=self.auditor)

        certificate = self.reload(certificate)
        self.assertEqual(certificate.stage, InspectionStage.AUDIT_REVIEW)
        self.assertIsNone(certificate.auditor_reviewed_by)
        self.assertFalse(StockEntry.objects.exists())


class RejectionTest(InspectionFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_reason_is_required(self):
        certificate = self.make_certificate()
        with self.assertRaises(ValidationError) as ctx:
            self.engine.reject(certificate.id, '   ', user=self.auditor)
        self.assertIn('reason', ctx.exception.fields)

    def test_non_text_reason_is_stored_as_text(self):
        certificate = self.make_certificate()
        certificate, _ = self.engine.reject(certificate.id, 5, user=self.auditor)
        self.assertEqual(certificate.stage, InspectionStage.REJECTED)
        self.assertEqual(self.reload(certificate).rejection_reason, '5')

    def test_reject_from_initiated(self):
        certificate = self.make_certificate()
        certificate, report = self.engine.reject(certificate.id, 'duplicate order', user=self.auditor)
        self.assertEqual(certificate.stage, InspectionStage.REJECTED)
        self.assertEqual(certificate.status, 'CANCELLED')
        self.assertEqual(certificate.rejection_stage, InspectionStage.INITIATED)
        self.assertEqual(certificate.rejected_by, self.auditor)
        self.assertEqual(certificate.stage_history[-1]['rejection_reason'], 'duplicate order')
        self.assertEqual(report, {'deleted_items': [], 'deleted_categories': [], 'cleanup_warnings': []})

    def test_scenario_f_provisional_catalog_removed(self):
        certificate = self.make_certificate(items=[
            self.line_data(description='Widget A'),
            self.line_data(description='Laptop'),
        ])
        certificate = self.advance_to_central_register(certificate)
        widget_line, laptop_line = self.lines(certificate)

        widgets = self.reconciler.create_sub_category(
            certificate.id, {'name': 'Widgets', 'parent_category_id': self.electronics.id},
            user=self.central_incharge,
        )
        self.reconciler.create_and_link_item(
            certificate.id, widget_line.id,
            {'name': 'Widget A', 'category': widgets.id, 'acct_unit': 'Nos'},
            attributes={'brand': 'Acme', 'model': 'W1'},
            user=self.central_incharge,
        )
        self.link_line(certificate, laptop_line)

        certificate, report = self.engine.reject(certificate.id, 'wrong vendor', user=self.auditor)

        self.assertEqual(report['deleted_categories'], ['Widgets'])
        self.assertEqual(report['deleted_items'], ['Widget A'])
        self.assertEqual(report['cleanup_warnings'], [])
        self.assertFalse(Category.objects.filter(name='Widgets').exists())
        self.assertTrue(Category.objects.filter(pk=self.laptops.pk).exists())
        self.assertTrue(Item.objects.filter(pk=self.laptop.pk).exists())

        widget_line.refresh_from_db()
        self.assertFalse(widget_line.is_item_linked)
        self.assertIsNone(widget_line.linked_item)

    def test_provisional_item_in_use_elsewhere_is_kept(self):
        first = self.advance_to_central_register(self.make_certificate())
        second = self.advance_to_central_register(self.make_certificate())

        result = self.reconciler.create_and_link_item(
            first.id, self.lines(first)[0].id,
            {'name': 'Docking Station', 'category': self.laptops.id, 'acct_unit': 'Nos'},
            attributes={'brand': 'Dell', 'model': 'WD19'},
            user=self.central_incharge,
        )
        dock = result['item']
        self.link_line(second, self.lines(second)[0], item=dock)

        _, report = self.engine.reject(first.id, 'wrong vendor', user=self.auditor)

        self.assertEqual(report['deleted_items'], [])
        self.assertEqual(len(report['cleanup_warnings']), 1)
        self.assertIn('Docking Station', report['cleanup_warnings'][0])
        self.assertTrue(Item.objects.filter(pk=dock.pk).exists())

    def test_cleanup_is_logged(self):
        certificate = self.make_certificate()
        self.engine.reject(certificate.id, 'cancelled', user=self.auditor)
        activity = UserActivity.objects.get(action='REJECTION_CLEANUP', object_id=certificate.id)
        self.assertEqual(activity.details['certificate_no'], certificate.certificate_no)


class TerminalImmutabilityTest(InspectionFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def assert_frozen(self, certificate):
        line = self.lines(certificate)[0]
        operations = [
            lambda: self.engine.patch(certificate.id, {'remarks': 'x'}, user=self.admin),
            lambda: self.engine.submit_to_stock_incharge(certificate.id, user=self.admin),
            lambda: self.engine.submit_central_register(certificate.id, user=self.admin),
            lambda: self.engine.submit_audit_review(certificate.id, user=self.admin),
            lambda: self.engine.reject(certificate.id, 'again', user=self.admin),
            lambda: self.link_line(certificate, line),
            lambda: self.reconciler.unlink_item(certificate.id, line.id, user=self.admin),
            lambda: self.reconciler.update_central_register_details(
                certificate.id, line.id, 'CDS-1', '1', user=self.admin
            ),
        ]
        for operation in operations:
            with self.assertRaises(TerminalStateError):
                operation()

    def test_completed_certificate_is_frozen(self):
        certificate = self.complete(self.make_certificate())
        self.assert_frozen(certificate)
        self.assertEqual(StockEntry.objects.count(), 1)

    def test_rejected_certificate_is_frozen(self):
        certificate = self.advance_to_central_register(self.make_certificate())
        certificate, _ = self.engine.reject(certificate.id, 'wrong vendor', user=self.auditor)
        self.assert_frozen(certificate)
        self.assertEqual(self.reload(certificate).stage, InspectionStage.REJECTED)
