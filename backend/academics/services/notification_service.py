import logging
from dataclasses import dataclass, asdict
from typing import List, Optional

from academics.signals import advisor_notice

logger = logging.getLogger(__name__)

ASSIGNED = 'assigned'
CONFIRMATION = 'confirmation'
REASSIGNED = 'reassigned'


@dataclass(frozen=True)
class AdvisorNotice:
    kind: str
    recipient_id: int
    message: str
    class_display: str
    priority: str

    def as_dict(self):
        return asdict(self)


def _display_name(user) -> str:
    return getattr(user, 'name', '') or getattr(user, 'email', '') or str(getattr(user, 'pk', ''))


def build_assignment_notices(assignment, faculty, department_owner, replaced_advisor, deactivated) -> List[AdvisorNotice]:
    """Build the notices for one advisor assignment.

    - `assigned` to the new advisor (mentions archived prior classes)
    - `confirmation` to the department owner
    - `reassigned` to the replaced advisor, when there is one
    """
    display = assignment.class_display
    role_label = assignment.get_role_display()
    own_prior = [a for a in deactivated if a.faculty_id == faculty.pk]
    notices = []

    message = f'You have been assigned as {role_label} for {display}'
    if own_prior:
        message += '. Your previous assignment(s) ({}) have been archived.'.format(', '.join(a.class_display for a in own_prior))
    notices.append(AdvisorNotice(ASSIGNED, faculty.pk, message, display, 'high'))

    if department_owner is not None:
        message = f'Successfully assigned {_display_name(faculty)} as {role_label} for {display}'
        if replaced_advisor is not None:
            message += f'. Replaced {_display_name(replaced_advisor)}.'
        if deactivated:
            message += f' {len(deactivated)} previous assignment(s) archived.'
        notices.append(AdvisorNotice(CONFIRMATION, department_owner.pk, message, display, 'medium'))

    if replaced_advisor is not None:
        message = (f'Your {role_label} role for {display} has been reassigned to {_display_name(faculty)}. '
                   'All your data remains safe and accessible.')
        notices.append(AdvisorNotice(REASSIGNED, replaced_advisor.pk, message, display, 'high'))

    return notices


def emit_notices(notices: List[AdvisorNotice], assignment=None, sender: Optional[object] = None):
    """Send each notice through `advisor_notice` and log it.

    Delivery belongs to the receivers; a failing receiver is logged and does
    not affect the assignment that produced the notice.
    """
    for notice in notices:
        logger.info('%s', {'event': 'advisor_notice', 'assignment_id': getattr(assignment, 'pk', None), **notice.as_dict()})
        responses = advisor_notice.send_robust(sender=sender or AdvisorNotice, notice=notice, assignment=assignment)
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error('advisor_notice receiver %r failed for %s notice to %s: %s',
                             receiver, notice.kind, notice.recipient_id, response)
