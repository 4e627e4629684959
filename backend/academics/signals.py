from django.dispatch import Signal

# Sent once per notice after a class advisor assignment is written.
# kwargs: notice (AdvisorNotice), assignment (ClassAssignment)
advisor_notice = Signal()
