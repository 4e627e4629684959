from django.test import TestCase

from academics.services import assignment_ledger, notification_service
from academics.signals import advisor_notice
from academics.tests.helpers import CLASS_2A3, CLASS_2B3, make_department, make_faculty, make_hod


class AdvisorNoticeTests(TestCase):
    def setUp(self):
        self.cse = make_department('CSE')
        self.hod = make_hod(self.cse)
        self.f1, _ = make_faculty(self.cse, name='Asha Rao')
        self.f2, _ = make_faculty(self.cse, name='Vikram Nair')
        self.received = []
        advisor_notice.connect(self._collect)
        self.addCleanup(advisor_notice.disconnect, self._collect)

    def _collect(self, sender, notice, assignment, **kwargs):
        self.received.append(notice)

    def assign(self, faculty, klass=CLASS_2A3):
        return assignment_ledger.assign_advisor(faculty, self.cse, assigned_by=self.hod, **klass)

    def test_first_assignment_notifies_advisor_and_owner(self):
        self.assign(self.f1)

        self.assertEqual([(n.kind, n.recipient_id) for n in self.received], [
            (notification_service.ASSIGNED, self.f1.pk),
            (notification_service.CONFIRMATION, self.hod.pk),
        ])
        self.assertEqual(self.received[0].priority, 'high')
        self.assertEqual(self.received[1].priority, 'medium')
        self.assertEqual(self.received[0].class_display, '2023-2027 | 2nd Year | Sem 3 | Sec A')

    def test_replacement_notifies_replaced_advisor(self):
        self.assign(self.f1)
        self.received.clear()

        result = self.assign(self.f2)

        kinds = {n.kind: n for n in self.received}
        self.assertEqual(set(kinds), {'assigned', 'confirmation', 'reassigned'})
        self.assertEqual(kinds['reassigned'].recipient_id, self.f1.pk)
        self.assertIn('Vikram Nair', kinds['reassigned'].message)
        self.assertIn('Replaced Asha Rao', kinds['confirmation'].message)
        self.assertEqual(result.notices, self.received)

    def test_own_prior_class_is_mentioned_to_the_advisor(self):
        self.assign(self.f1, CLASS_2A3)
        self.received.clear()

        self.assign(self.f1, CLASS_2B3)

        assigned = next(n for n in self.received if n.kind == 'assigned')
        self.assertIn('have been archived', assigned.message)
        self.assertNotIn('reassigned', {n.kind for n in self.received})

    def test_messages_name_the_assigned_role(self):
        self.assign(self.f1)
        self.received.clear()

        assignment_ledger.assign_advisor(self.f2, self.cse, assigned_by=self.hod, role='SUBJECT_FACULTY', **CLASS_2A3)

        messages = [n.message for n in self.received]
        self.assertIn('as Subject Faculty for', messages[0])
        self.assertTrue(all('Class Advisor' not in m for m in messages))

    def test_failing_receiver_does_not_undo_assignment(self):
        def broken(sender, **kwargs):
            raise RuntimeError('mail server down')

        advisor_notice.connect(broken)
        self.addCleanup(advisor_notice.disconnect, broken)

        with self.assertLogs('academics.services.notification_service', level='ERROR'):
            result = self.assign(self.f1)

        self.assertTrue(result.created)
        self.assertEqual(len(self.received), 2)
