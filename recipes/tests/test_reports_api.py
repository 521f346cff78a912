from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from recipes.models import RecipeList, Report
from recipes.tests.helpers import make_recipe, make_user


class ReportAPITestCase(APITestCase):
    def setUp(self):
        self.reporter = make_user('reporter')
        self.other = make_user('other')
        self.moderator = make_user('moderator', role='moderator')
        self.admin = make_user('admin', role='admin')
        self.recipe = make_recipe(self.other, name='Sfiha')
        self.client.force_authenticate(user=self.reporter)

    def _report(self, **overrides):
        payload = {
            'reportable_type': 'recipe',
            'reportable_id': self.recipe.id,
            'type': 'content_issue',
            'message': 'كمية الطحين غير صحيحة',
            **overrides,
        }
        return self.client.post(reverse('report-list'), payload, format='json')

    def test_create_report_on_recipe(self):
        response = self._report()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message'], 'تم إرسال البلاغ بنجاح')
        report = Report.objects.get()
        self.assertEqual(report.reportable, self.recipe)
        self.assertEqual(report.status, Report.STATUS_PENDING)
        self.assertEqual(response.data['report']['reportable_type'], 'recipe')
        self.assertEqual(response.data['report']['reportable']['slug'], self.recipe.slug)

    def test_create_report_on_list(self):
        recipe_list = RecipeList.objects.get(user=self.other, is_default=True)
        response = self._report(reportable_type='list', reportable_id=recipe_list.id, type='feedback')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Report.objects.get().reportable_type, 'list')

    def test_missing_target(self):
        response = self._report(reportable_id=99999)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(Report.objects.exists())

    def test_invalid_payload(self):
        self.assertEqual(self._report(reportable_type='user').status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(self._report(message='x' * 1001).status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_users_only_see_their_reports(self):
        self._report()
        self.client.force_authenticate(user=self.other)
        self._report(message='ملاحظة أخرى')

        response = self.client.get(reverse('report-list'))
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['results'][0]['message'], 'ملاحظة أخرى')

        own_report = Report.objects.get(user=self.reporter)
        response = self.client.get(reverse('report-detail', kwargs={'pk': own_report.pk}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_moderator_handles_report(self):
        self._report()
        report = Report.objects.get()
        self.client.force_authenticate(user=self.moderator)

        response = self.client.patch(
            reverse('admin-report-detail', kwargs={'pk': report.pk}),
            {'status': 'fixed', 'admin_reply': 'تم التصحيح، شكراً'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        report.refresh_from_db()
        self.assertEqual(report.status, Report.STATUS_FIXED)

        self.client.force_authenticate(user=self.reporter)
        response = self.client.get(reverse('report-detail', kwargs={'pk': report.pk}))
        self.assertEqual(response.data['admin_reply'], 'تم التصحيح، شكراً')
        self.assertNotIn('admin_note', response.data)

    def test_only_admins_delete_reports(self):
        self._report()
        report = Report.objects.get()
        url = reverse('admin-report-detail', kwargs={'pk': report.pk})

        self.client.force_authenticate(user=self.moderator)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.admin)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_200_OK)
        self.assertFalse(Report.objects.exists())

    def test_admin_filters_and_bulk_status(self):
        self._report()
        self._report(type='feedback', message='وصفة رائعة')
        self.client.force_authenticate(user=self.moderator)

        response = self.client.get(reverse('admin-report-list'), {'type': 'feedback'})
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['results'][0]['user']['id'], self.reporter.id)

        ids = list(Report.objects.values_list('id', flat=True))
        response = self.client.post(
            reverse('admin-report-bulk'), {'ids': ids, 'action': 'status_update', 'status': 'rejected'}, format='json'
        )
        self.assertEqual(response.data['processed'], 2)
        self.assertEqual(Report.objects.filter(status=Report.STATUS_REJECTED).count(), 2)

        response = self.client.post(reverse('admin-report-bulk'), {'ids': ids, 'action': 'delete'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
