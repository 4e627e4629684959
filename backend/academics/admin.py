from django.contrib import admin, messages

from .exceptions import LedgerError
from .models import (
    ClassAssignment,
    ClassAssignmentStatusChange,
    Department,
    FacultyAssignedClass,
    FacultyProfile,
    SemesterEnrollment,
    StudentRecord,
)
from .services import assignment_ledger, student_reconciliation


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'short_name')
    search_fields = ('code', 'name', 'short_name')


class FacultyAssignedClassInline(admin.TabularInline):
    model = FacultyAssignedClass
    extra = 0
    can_delete = False
    readonly_fields = ('batch', 'year', 'semester', 'section', 'assigned_by', 'assigned_date', 'is_active')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(FacultyProfile)
class FacultyProfileAdmin(admin.ModelAdmin):
    list_display = ('employee_id', 'user', 'department', 'position', 'status', 'is_class_advisor', 'current_assignment_summary')
    list_filter = ('department', 'status', 'is_class_advisor')
    search_fields = ('employee_id', 'user__email', 'user__name')
    readonly_fields = ('current_assignment_summary', 'is_class_advisor')
    inlines = [FacultyAssignedClassInline]


class StatusChangeInline(admin.TabularInline):
    model = ClassAssignmentStatusChange
    extra = 0
    can_delete = False
    readonly_fields = ('status', 'changed_at', 'changed_by', 'reason')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(ClassAssignment)
class ClassAssignmentAdmin(admin.ModelAdmin):
    list_display = ('class_display', 'department', 'faculty', 'role', 'status', 'assigned_date', 'deactivated_date')
    list_filter = ('department', 'status', 'role', 'year', 'section')
    search_fields = ('faculty__email', 'faculty__name', 'batch', 'class_key')
    readonly_fields = (
        'faculty', 'department', 'department_owner', 'assigned_by', 'role', 'batch', 'year', 'semester',
        'section', 'class_key', 'status', 'assigned_date', 'deactivated_date', 'deactivated_by',
        'deactivation_reason',
    )
    inlines = [StatusChangeInline]
    actions = ['deactivate_selected', 'repair_ledger']

    # entries are written by the ledger service only
    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description='Deactivate selected assignments')
    def deactivate_selected(self, request, queryset):
        done = 0
        for assignment in queryset.filter(status=ClassAssignment.Status.ACTIVE):
            try:
                assignment_ledger.deactivate_assignment(assignment.pk, request.user)
                done += 1
            except LedgerError as exc:
                self.message_user(request, f'{assignment}: {exc.message}', level=messages.WARNING)
        self.message_user(request, f'{done} assignment(s) deactivated.')

    @admin.action(description='Repair ledger and rebuild faculty summaries')
    def repair_ledger(self, request, queryset):
        report = assignment_ledger.repair_assignments(actor=request.user)
        self.message_user(
            request,
            f'Deactivated {len(report.deactivated)} duplicate assignment(s); updated {report.profiles_updated} profile(s).',
        )


class SemesterEnrollmentInline(admin.TabularInline):
    model = SemesterEnrollment
    fk_name = 'student'
    extra = 0
    can_delete = False
    readonly_fields = ('semester_name', 'year', 'class_id', 'faculty', 'status', 'enrolled_on', 'created_by')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(StudentRecord)
class StudentRecordAdmin(admin.ModelAdmin):
    list_display = ('roll_number', 'user', 'department', 'batch_year', 'section', 'status')
    list_filter = ('department', 'batch_year', 'section', 'status')
    search_fields = ('roll_number', 'user__email', 'user__name')
    inlines = [SemesterEnrollmentInline]
    actions = ['archive_selected']

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return ('user', 'roll_number', 'department', 'batch_year', 'section', 'created_by', 'created_at')
        return ('created_at',)

    @admin.action(description='Archive selected students')
    def archive_selected(self, request, queryset):
        for student in queryset:
            student_reconciliation.archive_student(student.pk, request.user)
        self.message_user(request, f'{queryset.count()} student(s) archived.')
