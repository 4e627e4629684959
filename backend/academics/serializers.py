from rest_framework import serializers

from academics.models import (
    ClassAssignment,
    ClassAssignmentStatusChange,
    SemesterEnrollment,
    StudentRecord,
)


class StatusChangeSerializer(serializers.ModelSerializer):
    changed_by = serializers.IntegerField(source='changed_by_id', read_only=True)

    class Meta:
        model = ClassAssignmentStatusChange
        fields = ('status', 'changed_at', 'changed_by', 'reason')


class ClassAssignmentSerializer(serializers.ModelSerializer):
    faculty = serializers.IntegerField(source='faculty_id', read_only=True)
    faculty_name = serializers.CharField(source='faculty.name', read_only=True)
    faculty_email = serializers.CharField(source='faculty.email', read_only=True)
    department = serializers.CharField(source='department.code', read_only=True)
    department_owner = serializers.IntegerField(source='department_owner_id', read_only=True)
    assigned_by = serializers.IntegerField(source='assigned_by_id', read_only=True)
    deactivated_by = serializers.IntegerField(source='deactivated_by_id', read_only=True)
    class_display = serializers.CharField(read_only=True)
    status_history = StatusChangeSerializer(many=True, read_only=True)

    class Meta:
        model = ClassAssignment
        fields = (
            'id', 'faculty', 'faculty_name', 'faculty_email', 'department', 'department_owner', 'assigned_by',
            'role', 'batch', 'year', 'semester', 'section', 'class_key', 'class_display', 'status',
            'assigned_date', 'deactivated_date', 'deactivated_by', 'deactivation_reason', 'notes',
            'status_history',
        )
        read_only_fields = fields


class AssignAdvisorSerializer(serializers.Serializer):
    """Shapes the request only; field rules are checked by the ledger so every violation is reported together."""
    faculty = serializers.CharField()
    department = serializers.CharField(required=False, allow_blank=True)
    batch = serializers.CharField(required=False, allow_blank=True, default='')
    year = serializers.CharField(required=False, allow_blank=True, default='')
    semester = serializers.CharField(required=False, allow_blank=True, default='')
    section = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    role = serializers.ChoiceField(choices=ClassAssignment.AssignmentRole.choices, default=ClassAssignment.AssignmentRole.CLASS_ADVISOR)


class ClassContextSerializer(serializers.Serializer):
    department = serializers.CharField(required=False, allow_blank=True, default='')
    batch_year = serializers.CharField(required=False, allow_blank=True, default='')
    section = serializers.CharField(required=False, allow_blank=True, default='')
    semester_name = serializers.CharField(required=False, allow_blank=True, default='')
    year = serializers.CharField(required=False, allow_blank=True, default='')


class ReconcileRequestSerializer(serializers.Serializer):
    faculty = serializers.CharField()
    class_context = ClassContextSerializer()
    student = serializers.DictField(required=False)
    rows = serializers.ListField(child=serializers.DictField(), required=False)

    def validate(self, attrs):
        if ('student' in attrs) == ('rows' in attrs):
            raise serializers.ValidationError('Provide either a single student or a list of rows.')
        return attrs


class SemesterEnrollmentSerializer(serializers.ModelSerializer):
    faculty = serializers.IntegerField(source='faculty_id', read_only=True)
    faculty_name = serializers.CharField(source='faculty.name', read_only=True)

    class Meta:
        model = SemesterEnrollment
        fields = ('id', 'semester_name', 'year', 'class_id', 'faculty', 'faculty_name', 'status', 'enrolled_on')
        read_only_fields = fields


class StudentRecordSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='user.name', read_only=True)
    email = serializers.CharField(source='user.email', read_only=True)
    department = serializers.CharField(source='department.code', read_only=True)

    class Meta:
        model = StudentRecord
        fields = (
            'id', 'roll_number', 'name', 'email', 'department', 'batch_year', 'section', 'status',
            'mobile', 'parent_contact', 'address', 'date_of_birth', 'created_at',
        )
        read_only_fields = fields
