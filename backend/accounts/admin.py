from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User
from .services import deactivate_user
from academics.models import FacultyProfile, StudentRecord


class FacultyProfileInline(admin.StackedInline):
    model = FacultyProfile
    can_delete = False
    fk_name = 'user'
    verbose_name = 'Faculty profile'
    verbose_name_plural = 'Faculty profile'
    # the summary is maintained by the assignment ledger
    readonly_fields = ('current_assignment_summary', 'is_class_advisor')


class StudentRecordInline(admin.StackedInline):
    model = StudentRecord
    can_delete = False
    fk_name = 'user'
    verbose_name = 'Student record'
    verbose_name_plural = 'Student record'

    def get_readonly_fields(self, request, obj=None):
        # cohort and roll number are fixed once the record exists
        if obj and getattr(obj, 'student_record', None) is not None:
            return ('roll_number', 'department', 'batch_year', 'section')
        return ()


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ('email', 'name', 'role', 'department', 'status', 'hod_expiry')
    list_filter = ('role', 'status', 'department')
    search_fields = ('email', 'name', 'username')
    ordering = ('email',)
    inlines = (FacultyProfileInline, StudentRecordInline)
    actions = ('deactivate_users',)

    fieldsets = DjangoUserAdmin.fieldsets + (
        ('Institution', {'fields': ('name', 'role', 'department', 'status', 'hod_expiry', 'mobile_no')}),
    )

    add_fieldsets = DjangoUserAdmin.add_fieldsets + (
        ('Institution', {'fields': ('email', 'name', 'role', 'department')}),
    )

    @admin.action(description='Deactivate selected identities')
    def deactivate_users(self, request, queryset):
        count = 0
        for user in queryset:
            deactivate_user(user, reason='admin action', actor=request.user)
            count += 1
        self.message_user(request, f'{count} identity(ies) deactivated.')
