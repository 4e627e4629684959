import logging
from dataclasses import asdict

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler as drf_exception_handler

from academics import exceptions as ledger_errors
from academics.permissions import (
    IsInstitutionAdmin,
    IsLedgerManager,
    require_manage,
    require_view,
)
from academics.serializers import (
    AssignAdvisorSerializer,
    ClassAssignmentSerializer,
    ClassContextSerializer,
    ReconcileRequestSerializer,
    SemesterEnrollmentSerializer,
    StudentRecordSerializer,
)
from academics.services import assignment_ledger, class_identity, student_reconciliation
from academics.services.faculty_resolution import resolve_faculty

logger = logging.getLogger(__name__)

_LEDGER_STATUS = (
    (ledger_errors.NotFound, status.HTTP_404_NOT_FOUND),
    (ledger_errors.Conflict, status.HTTP_409_CONFLICT),
    (ledger_errors.InvalidState, status.HTTP_409_CONFLICT),
    (ledger_errors.Unavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def exception_handler(exc, context):
    """Map service-layer errors onto HTTP responses.

    Validation failures carry every field violation under `errors`.
    """
    if isinstance(exc, DjangoValidationError):
        errors = exc.message_dict if hasattr(exc, 'error_dict') else {'non_field_errors': exc.messages}
        return Response({'detail': 'Validation failed', 'errors': errors, 'status_code': 400},
                        status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, ledger_errors.LedgerError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for klass, mapped in _LEDGER_STATUS:
            if isinstance(exc, klass):
                code = mapped
                break
        if code >= 500:
            logger.error('Ledger error on %s: %s', context.get('view').__class__.__name__, exc.message)
        body = {'detail': exc.message, 'status_code': code}
        if exc.details:
            body['details'] = exc.details
        if isinstance(exc, ledger_errors.Conflict):
            body['retryable'] = True
        return Response(body, status=code)

    response = drf_exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict):
        response.data['status_code'] = response.status_code
    return response


def _person(user):
    if user is None:
        return None
    return {'id': user.pk, 'name': user.name, 'email': user.email}


def _query_context(params):
    serializer = ClassContextSerializer(data={k: params.get(k, '') for k in student_reconciliation.CLASS_CONTEXT_FIELDS})
    serializer.is_valid(raise_exception=True)
    return dict(serializer.validated_data)


class ClassAssignmentListView(APIView):
    permission_classes = (IsAuthenticated, IsLedgerManager)

    def get(self, request):
        department = assignment_ledger.resolve_department(
            request.query_params.get('department') or request.user.department
        )
        require_view(request.user, department)
        qs = assignment_ledger.assignments_for_department(
            department, status=request.query_params.get('status') or assignment_ledger.ACTIVE,
        ).prefetch_related('status_history')
        return Response(ClassAssignmentSerializer(qs, many=True).data)

    def post(self, request):
        serializer = AssignAdvisorSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        department = assignment_ledger.resolve_department(data.get('department') or request.user.department)
        require_manage(request.user, department)

        result = assignment_ledger.assign_advisor(
            faculty=data['faculty'],
            department=department,
            batch=data['batch'],
            year=data['year'],
            semester=data['semester'],
            section=data['section'],
            assigned_by=request.user,
            notes=data['notes'],
            role=data['role'],
        )
        body = {
            'assignment': ClassAssignmentSerializer(result.assignment).data,
            'deactivated': [a.pk for a in result.deactivated],
            'replaced_advisor': _person(result.replaced_advisor),
            'created': result.created,
            'notices': [n.as_dict() for n in result.notices],
        }
        return Response(body, status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK)


class ClassAssignmentDetailView(APIView):
    permission_classes = (IsAuthenticated, IsLedgerManager)

    def get(self, request, pk):
        assignment = assignment_ledger.get_assignment(pk)
        require_view(request.user, assignment.department)
        return Response(ClassAssignmentSerializer(assignment).data)

    def delete(self, request, pk):
        assignment = assignment_ledger.get_assignment(pk)
        require_manage(request.user, assignment.department)
        removed = assignment_ledger.remove_assignment(pk, request.user)
        return Response({'removed': removed})


class ClassAssignmentDeactivateView(APIView):
    permission_classes = (IsAuthenticated, IsLedgerManager)

    def post(self, request, pk):
        assignment = assignment_ledger.get_assignment(pk)
        require_manage(request.user, assignment.department)
        reason = (request.data.get('reason') or '').strip() or assignment_ledger.DEACTIVATED_REASON
        assignment = assignment_ledger.deactivate_assignment(pk, request.user, reason=reason)
        return Response(ClassAssignmentSerializer(assignment).data)


class CurrentAdvisorView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        params = request.query_params
        department = assignment_ledger.resolve_department(params.get('department') or request.user.department)
        require_view(request.user, department)
        batch, year, semester, section = (params.get(k, '') for k in ('batch', 'year', 'semester', 'section'))
        errors = class_identity.validate_class_fields(batch, year, semester, section)
        if errors:
            raise DjangoValidationError(errors)
        assignment = assignment_ledger.current_advisor(department, batch, year, int(semester), section)
        data = ClassAssignmentSerializer(assignment).data if assignment is not None else None
        return Response({'assignment': data})


class ClassAssignmentRepairView(APIView):
    permission_classes = (IsAuthenticated, IsInstitutionAdmin)

    def post(self, request):
        dry_run = str(request.data.get('dry_run', '')).lower() in ('1', 'true', 'yes')
        report = assignment_ledger.repair_assignments(actor=request.user, dry_run=dry_run)
        return Response(asdict(report))


class StudentReconcileView(APIView):
    permission_classes = (IsAuthenticated,)

    def post(self, request):
        serializer = ReconcileRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        context = dict(data['class_context'])

        department = assignment_ledger.resolve_department(context.get('department') or request.user.department)
        context['department'] = department
        faculty_user, _profile = resolve_faculty(data['faculty'])
        own_class = faculty_user.pk == request.user.pk and assignment_ledger.holds_class(
            faculty_user, department, context.get('batch_year'), context.get('year'),
            context.get('semester_name'), context.get('section'),
        )
        if not own_class:
            require_manage(request.user, department)

        if 'rows' in data:
            report = student_reconciliation.reconcile_many(data['rows'], context, faculty_user, request.user)
            return Response(report)

        result = student_reconciliation.reconcile(data['student'], context, faculty_user, request.user)
        body = {
            'action': result.action,
            'reason': result.reason,
            'student': StudentRecordSerializer(result.student).data if result.student is not None else None,
            'enrollment': SemesterEnrollmentSerializer(result.enrollment).data if result.enrollment is not None else None,
            'conflict_details': result.conflict_details,
        }
        code = status.HTTP_201_CREATED if result.action == student_reconciliation.CREATE else status.HTTP_200_OK
        return Response(body, status=code)


class StudentHistoryView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, pk):
        history = student_reconciliation.academic_history(pk)
        if history.student.user_id != request.user.pk:
            require_view(request.user, history.student.department)
        body = StudentRecordSerializer(history.student).data
        body['academic_history'] = SemesterEnrollmentSerializer(history.enrollments, many=True).data
        return Response(body)


class StudentArchiveView(APIView):
    permission_classes = (IsAuthenticated, IsLedgerManager)

    def post(self, request, pk):
        student = student_reconciliation.get_student(pk)
        require_manage(request.user, student.department)
        student = student_reconciliation.archive_student(pk, request.user, status=request.data.get('status') or 'inactive')
        return Response(StudentRecordSerializer(student).data)


class StudentEnrollmentArchiveView(APIView):
    """Archive one enrollment: `{"class_id": ..., "faculty": ...}`."""
    permission_classes = (IsAuthenticated,)

    def post(self, request, pk):
        student = student_reconciliation.get_student(pk)
        class_id = str(request.data.get('class_id') or '').strip()
        faculty_ref = request.data.get('faculty') or request.user.pk
        if not class_id:
            raise DjangoValidationError({'class_id': 'This field is required'})
        faculty_user, _profile = resolve_faculty(faculty_ref)
        if faculty_user.pk != request.user.pk:
            require_manage(request.user, student.department)
        enrollment = student_reconciliation.archive_enrollment(pk, class_id, faculty_user, request.user)
        return Response(SemesterEnrollmentSerializer(enrollment).data)


class FacultyStudentsView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, faculty_ref):
        faculty_user, _profile = resolve_faculty(faculty_ref)
        context = _query_context(request.query_params)
        department = assignment_ledger.resolve_department(context.get('department') or faculty_user.department)
        context['department'] = department
        if faculty_user.pk != request.user.pk:
            require_manage(request.user, department)

        missing = {k: 'This query parameter is required' for k in ('batch_year', 'section', 'semester_name', 'year') if not context.get(k)}
        if missing:
            raise DjangoValidationError(missing)

        students = student_reconciliation.enrollments_for_faculty(faculty_user, context)
        rows = []
        for entry in students:
            row = StudentRecordSerializer(entry.student).data
            row['current_semester'] = SemesterEnrollmentSerializer(entry.enrollment).data
            rows.append(row)
        return Response({'students': rows, 'total': len(rows)})

