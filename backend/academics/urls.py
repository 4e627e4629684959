from django.urls import path

from .api import (
    ClassAssignmentDeactivateView,
    ClassAssignmentDetailView,
    ClassAssignmentListView,
    ClassAssignmentRepairView,
    CurrentAdvisorView,
    FacultyStudentsView,
    StudentArchiveView,
    StudentEnrollmentArchiveView,
    StudentHistoryView,
    StudentReconcileView,
)

# Mounted under `/api/academics/`.
urlpatterns = [
    # Class assignment ledger
    path('class-assignments/', ClassAssignmentListView.as_view()),
    path('class-assignments/current/', CurrentAdvisorView.as_view()),
    path('class-assignments/repair/', ClassAssignmentRepairView.as_view()),
    path('class-assignments/<int:pk>/', ClassAssignmentDetailView.as_view()),
    path('class-assignments/<int:pk>/deactivate/', ClassAssignmentDeactivateView.as_view()),

    # Student roster
    path('students/reconcile/', StudentReconcileView.as_view()),
    path('students/<int:pk>/history/', StudentHistoryView.as_view()),
    path('students/<int:pk>/archive/', StudentArchiveView.as_view()),
    path('students/<int:pk>/enrollments/archive/', StudentEnrollmentArchiveView.as_view()),
    path('faculty/<str:faculty_ref>/students/', FacultyStudentsView.as_view()),
]
