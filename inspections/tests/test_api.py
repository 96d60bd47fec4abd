from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from inspections.models import InspectionCertificate, InspectionStage
from user_management.models import UserActivity

from .base import InspectionFixturesMixin


class InspectionApiTestMixin(InspectionFixturesMixin):
    def setUp(self):
        self.create_fixtures()

    def action_url(self, certificate, name):
        return reverse(f'inspection-certificate-{name}', args=[certificate.id])

    def detail_url(self, certificate):
        return reverse('inspection-certificate-detail', args=[certificate.id])

    def post_action(self, user, certificate, name, data=None):
        self.client.force_authenticate(user=user)
        return self.client.post(self.action_url(certificate, name), data or {}, format='json')


class CertificateCrudApiTest(InspectionApiTestMixin, APITestCase):
    def test_location_head_creates_certificate(self):
        payload = {
            'date': '2024-01-15',
            'department': self.department.id,
            'contract_no': 'CN-API-1',
            'contractor_name': 'Acme Supplies',
            'consignee_name': 'Dr. Rao',
            'consignee_designation': 'Professor',
            'indenter': 'Lab Incharge',
            'indent_no': 'IND-9',
            'inspection_items': [
                {'item_description': 'Laptop', 'tendered_quantity': 4, 'accepted_quantity': 3,
                 'rejected_quantity': 1, 'unit_price': '1200.50'},
            ],
        }
        self.client.force_authenticate(user=self.location_head)
        response = self.client.post(reverse('inspection-certificate-list'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertTrue(response.data['certificate_no'].startswith('IC-'))
        self.assertEqual(response.data['stage'], InspectionStage.INITIATED)
        self.assertEqual(response.data['workflow_type'], 'FOUR_STAGE')
        self.assertFalse(response.data['is_root_department'])
        self.assertEqual(len(response.data['inspection_items']), 1)
        self.assertIn('CAN_EDIT_INITIATED', response.data['capabilities'])
        self.assertEqual(response.data['linking_summary']['total_items'], 1)

    def test_validation_errors_list_fields(self):
        self.client.force_authenticate(user=self.location_head)
        response = self.client.post(
            reverse('inspection-certificate-list'),
            {'department': self.department.id, 'inspection_items': [
                {'item_description': 'Laptop', 'tendered_quantity': 1, 'accepted_quantity': 2},
            ]},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'ValidationError')
        self.assertIn('inspection_items[0].accepted_quantity', response.data['fields'])

    def test_auditor_cannot_create(self):
        self.client.force_authenticate(user=self.auditor)
        response = self.client.post(
            reverse('inspection-certificate-list'), self.header_data(), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_head_of_other_department_cannot_create(self):
        other = self.create_user('other_head', 'LOCATION_HEAD', [self.root.auto_created_store])
        self.client.force_authenticate(user=other)
        response = self.client.post(
            reverse('inspection-certificate-list'),
            {'department': self.department.id},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_is_scoped_by_role(self):
        own = self.make_certificate()
        root_certificate = self.make_certificate(department=self.root)

        self.client.force_authenticate(user=self.location_head)
        response = self.client.get(reverse('inspection-certificate-list'))
        self.assertEqual([row['id'] for row in response.data], [own.id])

        self.client.force_authenticate(user=self.auditor)
        response = self.client.get(reverse('inspection-certificate-list'))
        self.assertEqual({row['id'] for row in response.data}, {own.id, root_certificate.id})

    def test_patch_and_stale_stage(self):
        certificate = self.make_certificate()
        self.client.force_authenticate(user=self.location_head)

        response = self.client.patch(
            self.detail_url(certificate), {'remarks': 'Checked on arrival'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['remarks'], 'Checked on arrival')

        response = self.client.patch(
            self.detail_url(certificate),
            {'remarks': 'late', 'expected_stage': InspectionStage.STOCK_DETAILS},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['current_stage'], InspectionStage.INITIATED)
        self.assertEqual(response.data['expected_stage'], InspectionStage.STOCK_DETAILS)

    def test_patch_completed_certificate_reports_terminal_state(self):
        certificate = self.complete(self.make_certificate())
        self.client.force_authenticate(user=self.location_head)
        response = self.client.patch(self.detail_url(certificate), {'remarks': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'TerminalStateError')
        self.assertEqual(response.data['stage'], InspectionStage.COMPLETED)

    def test_patch_cannot_move_certificate_outside_own_department(self):
        certificate = self.make_certificate()
        self.client.force_authenticate(user=self.location_head)
        response = self.client.patch(
            self.detail_url(certificate), {'department': self.root.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.reload(certificate).department, self.department)

    def test_admin_moves_certificate_to_root_department(self):
        certificate = self.make_certificate()
        self.client.force_authenticate(user=self.admin)
        response = self.client.patch(
            self.detail_url(certificate), {'department': self.root.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['workflow_type'], 'THREE_STAGE')

        response = self.post_action(self.admin, certificate, 'submit-to-stock-incharge')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['new_stage'], InspectionStage.CENTRAL_REGISTER)

    def test_creation_options_for_location_head(self):
        self.client.force_authenticate(user=self.location_head)
        response = self.client.get(reverse('inspection-certificate-creation-options'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['departments']], [self.department.id])
        self.assertFalse(response.data['departments'][0]['is_root_unit'])
        self.assertFalse(response.data['can_select_department'])
        self.assertTrue(response.data['can_create'])
        self.assertEqual(response.data['user_role'], 'LOCATION_HEAD')

    def test_creation_options_for_admin_and_auditor(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('inspection-certificate-creation-options'))
        self.assertEqual(
            {row['id'] for row in response.data['departments']}, {self.root.id, self.department.id}
        )
        self.assertTrue(response.data['can_select_department'])

        self.client.force_authenticate(user=self.auditor)
        response = self.client.get(reverse('inspection-certificate-creation-options'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['departments'], [])
        self.assertFalse(response.data['can_select_department'])
        self.assertFalse(response.data['can_create'])

    def test_put_and_delete_are_not_exposed(self):
        certificate = self.make_certificate()
        self.client.force_authenticate(user=self.admin)
        self.assertEqual(
            self.client.delete(self.detail_url(certificate)).status_code,
            status.HTTP_405_METHOD_NOT_ALLOWED,
        )
        self.assertEqual(
            self.client.put(self.detail_url(certificate), {}, format='json').status_code,
            status.HTTP_405_METHOD_NOT_ALLOWED,
        )


class TransitionApiTest(InspectionApiTestMixin, APITestCase):
    def test_submit_to_stock_incharge(self):
        certificate = self.make_certificate()
        response = self.post_action(self.location_head, certificate, 'submit-to-stock-incharge')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['new_stage'], InspectionStage.STOCK_DETAILS)
        self.assertEqual(response.data['certificate']['stage'], InspectionStage.STOCK_DETAILS)
        self.assertTrue(response.data['next_step'])

    def test_root_department_skip_message(self):
        certificate = self.make_certificate(department=self.root)
        response = self.post_action(self.root_head, certificate, 'submit-to-stock-incharge')
        self.assertEqual(response.data['new_stage'], InspectionStage.CENTRAL_REGISTER)
        self.assertIn('root department', response.data['message'])

    def test_missing_header_fields(self):
        certificate = self.make_certificate(contractor_name='', indent_no='')
        response = self.post_action(self.location_head, certificate, 'submit-to-stock-incharge')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(set(response.data['fields']), {'contractor_name', 'indent_no'})

    def test_wrong_role_is_forbidden(self):
        certificate = self.make_certificate()
        response = self.post_action(self.store_incharge, certificate, 'submit-to-stock-incharge')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(
            InspectionCertificate.objects.get(pk=certificate.pk).stage, InspectionStage.INITIATED
        )

    def test_stale_expected_stage_returns_conflict(self):
        certificate = self.make_certificate()
        response = self.post_action(
            self.location_head, certificate, 'submit-to-stock-incharge',
            {'expected_stage': InspectionStage.CENTRAL_REGISTER},
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'ConflictError')

    def test_linking_gate_payload(self):
        certificate = self.advance_to_central_register(self.make_certificate(items=[
            self.line_data(description='Laptop'),
            self.line_data(description='Monitor'),
        ]))
        response = self.post_action(self.central_incharge, certificate, 'submit-central-register')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'LinkingIncompleteError')
        self.assertEqual(response.data['unlinked_count'], 2)
        self.assertEqual(response.data['examples'], ['Laptop', 'Monitor'])
        self.assertTrue(response.data['hint'])

    def test_audit_review_creates_stock(self):
        certificate = self.advance_to_audit_review(self.make_certificate(items=[
            self.line_data(tendered=2, accepted=2),
        ]))
        response = self.post_action(self.auditor, certificate, 'submit-audit-review')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['new_stage'], InspectionStage.COMPLETED)
        self.assertTrue(response.data['workflow_completed'])
        self.assertEqual(len(response.data['stock_entries']), 1)
        self.assertEqual(response.data['instances_created'], 2)

    def test_reject_reports_cleanup(self):
        certificate = self.advance_to_central_register(self.make_certificate())
        response = self.post_action(self.auditor, certificate, 'reject', {'reason': 'wrong vendor'})
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['new_stage'], InspectionStage.REJECTED)
        self.assertEqual(response.data['reason'], 'wrong vendor')
        self.assertEqual(response.data['deleted_items'], [])
        self.assertEqual(response.data['deleted_categories'], [])

    def test_reject_requires_reason(self):
        certificate = self.make_certificate()
        response = self.post_action(self.auditor, certificate, 'reject', {})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('reason', response.data['fields'])


class LinkingApiTest(InspectionApiTestMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.certificate = self.advance_to_central_register(self.make_certificate())
        self.line = self.lines(self.certificate)[0]

    def test_link_to_existing_item(self):
        response = self.post_action(self.central_incharge, self.certificate, 'link-to-existing-item', {
            'inspection_item_id': self.line.id,
            'item_id': self.laptop.id,
            'brand': 'Dell',
            'model': 'Latitude',
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data['inspection_item']['is_item_linked'])
        self.assertEqual(response.data['inspection_item']['linked_item_code'], self.laptop.code)
        self.assertTrue(response.data['linking_summary']['all_linked'])
        self.assertEqual(response.data['item']['tracking_type'], 'INDIVIDUAL')

    def test_link_missing_attributes(self):
        response = self.post_action(self.central_incharge, self.certificate, 'link-to-existing-item', {
            'inspection_item_id': self.line.id,
            'item_id': self.laptop.id,
            'tracking_attributes': {'brand': 'Dell'},
        })
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(list(response.data['fields']), ['model'])

    def test_link_requires_ids(self):
        response = self.post_action(self.central_incharge, self.certificate, 'link-to-existing-item', {})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(set(response.data['fields']), {'inspection_item_id', 'item_id'})

    def test_unknown_line_is_not_found(self):
        response = self.post_action(self.central_incharge, self.certificate, 'unlink-item', {
            'inspection_item_id': 987654,
        })
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'NotFoundError')

    def test_department_store_cannot_link(self):
        response = self.post_action(self.store_incharge, self.certificate, 'link-to-existing-item', {
            'inspection_item_id': self.line.id, 'item_id': self.laptop.id,
        })
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_sub_category_and_item(self):
        response = self.post_action(self.central_incharge, self.certificate, 'create-sub-category', {
            'name': 'Widgets', 'parent_category_id': self.electronics.id,
        })
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        category_id = response.data['category']['id']
        self.assertEqual(response.data['category']['effective_tracking_type'], 'INDIVIDUAL')

        response = self.post_action(self.central_incharge, self.certificate, 'create-and-link-item', {
            'inspection_item_id': self.line.id,
            'item_data': {'name': 'Widget', 'category': category_id, 'acct_unit': 'Nos'},
            'tracking_attributes': {'brand': 'Acme', 'model': 'W-1'},
        })
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['item']['name'], 'Widget')

    def test_unlinked_items(self):
        self.client.force_authenticate(user=self.central_incharge)
        response = self.client.get(self.action_url(self.certificate, 'unlinked-items'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['unlinked_items']], [self.line.id])
        self.assertEqual(response.data['linking_summary']['unlinked_count'], 1)

    def test_register_details_and_stock_settings(self):
        self.link_line(self.certificate, self.line)
        response = self.post_action(
            self.central_incharge, self.certificate, 'update-central-register-details',
            {'inspection_item_id': self.line.id, 'central_register_no': 'CDS-3',
             'central_register_page_no': '17'},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['inspection_item']['central_register_no'], 'CDS-3')

        response = self.post_action(
            self.central_incharge, self.certificate, 'update-item-stock-settings',
            {'inspection_item_id': self.line.id, 'warranty_months': 24},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['inspection_item']['warranty_months'], 24)


class DocumentApiTest(InspectionApiTestMixin, APITestCase):
    def test_pdf_requires_completion(self):
        certificate = self.make_certificate()
        self.client.force_authenticate(user=self.auditor)
        response = self.client.get(self.action_url(certificate, 'download-pdf'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_download_completed_certificate(self):
        certificate = self.complete(self.make_certificate(items=[
            self.line_data(tendered=3, accepted=2, rejected=1, remarks='One unit cracked'),
        ]))
        self.client.force_authenticate(user=self.auditor)
        response = self.client.get(self.action_url(certificate, 'download-pdf'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertIn(certificate.certificate_no, response['Content-Disposition'])
        self.assertTrue(response.content.startswith(b'%PDF'))
        self.assertTrue(UserActivity.objects.filter(action='DOWNLOAD_PDF', user=self.auditor).exists())


class CatalogAndLoginApiTest(InspectionApiTestMixin, APITestCase):
    def test_item_search(self):
        self.client.force_authenticate(user=self.central_incharge)
        response = self.client.get(reverse('item-list'), {'search': 'lap'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data], [self.laptop.id])
        self.assertEqual(response.data[0]['tracking_type'], 'INDIVIDUAL')

    def test_category_levels(self):
        self.client.force_authenticate(user=self.central_incharge)
        response = self.client.get(reverse('category-list'), {'level': 'broader'})
        self.assertEqual(
            {row['name'] for row in response.data}, {'Electronics', 'Medicines', 'Stationery'}
        )

    def test_login_returns_role_and_pending_work(self):
        self.make_certificate()
        response = self.client.post(
            reverse('token_obtain_pair'),
            {'username': 'head', 'password': 'testpass123'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['role'], 'LOCATION_HEAD')
        self.assertEqual(response.data['user']['pending_certificates'], 1)
        self.assertTrue(UserActivity.objects.filter(action='LOGIN', user=self.location_head).exists())

    def test_anonymous_requests_are_rejected(self):
        response = self.client.get(reverse('inspection-certificate-list'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
