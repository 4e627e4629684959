import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

BATCH_VALIDATOR = django.core.validators.RegexValidator(
    message='Batch must be in format YYYY-YYYY (e.g., 2022-2026)', regex='^\\d{4}-\\d{4}$',
)
YEAR_CHOICES = [('1st Year', '1st Year'), ('2nd Year', '2nd Year'), ('3rd Year', '3rd Year'), ('4th Year', '4th Year')]
SECTION_CHOICES = [('A', 'A'), ('B', 'B'), ('C', 'C')]
SEMESTER_NAME_CHOICES = [(f'Sem {n}', f'Sem {n}') for n in range(1, 9)]
ASSIGNMENT_STATUS_CHOICES = [('ACTIVE', 'Active'), ('INACTIVE', 'Inactive')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Department',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=16, unique=True)),
                ('name', models.CharField(max_length=128)),
                ('short_name', models.CharField(blank=True, max_length=32)),
            ],
            options={
                'ordering': ('code',),
            },
        ),
        migrations.CreateModel(
            name='FacultyProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('employee_id', models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ('position', models.CharField(blank=True, max_length=128)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive')], default='active', max_length=16)),
                ('current_assignment_summary', models.CharField(blank=True, default='', max_length=255)),
                ('is_class_advisor', models.BooleanField(default=False)),
                ('department', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='faculty', to='academics.department')),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='faculty_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Faculty Profile',
                'verbose_name_plural': 'Faculty Profiles',
            },
        ),
        migrations.CreateModel(
            name='FacultyAssignedClass',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('batch', models.CharField(max_length=9)),
                ('year', models.CharField(max_length=16)),
                ('semester', models.PositiveSmallIntegerField()),
                ('section', models.CharField(max_length=1)),
                ('assigned_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('is_active', models.BooleanField(default=True)),
                ('assigned_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('faculty_profile', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assigned_classes', to='academics.facultyprofile')),
            ],
            options={
                'verbose_name': 'Faculty Assigned Class',
                'verbose_name_plural': 'Faculty Assigned Classes',
                'ordering': ('-assigned_date', '-id'),
            },
        ),
        migrations.CreateModel(
            name='ClassAssignment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('CLASS_ADVISOR', 'Class Advisor'), ('SUBJECT_FACULTY', 'Subject Faculty')], db_index=True, default='CLASS_ADVISOR', max_length=16)),
                ('batch', models.CharField(max_length=9, validators=[BATCH_VALIDATOR])),
                ('year', models.CharField(choices=YEAR_CHOICES, max_length=16)),
                ('semester', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(8)])),
                ('section', models.CharField(choices=SECTION_CHOICES, max_length=1)),
                ('class_key', models.CharField(db_index=True, editable=False, max_length=64)),
                ('status', models.CharField(choices=ASSIGNMENT_STATUS_CHOICES, db_index=True, default='ACTIVE', max_length=8)),
                ('assigned_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('deactivated_date', models.DateTimeField(blank=True, null=True)),
                ('deactivation_reason', models.CharField(blank=True, default='', max_length=300)),
                ('notes', models.TextField(blank=True, default='', max_length=500)),
                ('assigned_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='made_class_assignments', to=settings.AUTH_USER_MODEL)),
                ('deactivated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('department', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='class_assignments', to='academics.department')),
                ('department_owner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='owned_class_assignments', to=settings.AUTH_USER_MODEL)),
                ('faculty', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='class_assignments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Class Assignment',
                'verbose_name_plural': 'Class Assignments',
                'ordering': ('-assigned_date', '-id'),
                'indexes': [
                    models.Index(fields=['department', 'status', 'role'], name='class_assign_dept_status_idx'),
                    models.Index(fields=['faculty', 'status', 'role'], name='class_assign_fac_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'ACTIVE')), fields=('department', 'class_key', 'role'), name='unique_active_assignment_per_class'),
                    models.UniqueConstraint(condition=models.Q(('status', 'ACTIVE')), fields=('faculty', 'role'), name='unique_active_assignment_per_faculty'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ClassAssignmentStatusChange',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=ASSIGNMENT_STATUS_CHOICES, max_length=8)),
                ('changed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('reason', models.CharField(blank=True, default='', max_length=300)),
                ('assignment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='status_history', to='academics.classassignment')),
                ('changed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ('changed_at', 'id'),
            },
        ),
        migrations.CreateModel(
            name='StudentRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('roll_number', models.CharField(db_index=True, max_length=64, unique=True)),
                ('batch_year', models.CharField(max_length=9, validators=[BATCH_VALIDATOR])),
                ('section', models.CharField(choices=SECTION_CHOICES, max_length=1)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('alumni', 'Alumni')], db_index=True, default='active', max_length=16)),
                ('mobile', models.CharField(blank=True, default='', max_length=32)),
                ('parent_contact', models.CharField(blank=True, default='', max_length=32)),
                ('address', models.TextField(blank=True, default='')),
                ('date_of_birth', models.DateField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('department', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='students', to='academics.department')),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='student_record', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Student Record',
                'verbose_name_plural': 'Student Records',
                'ordering': ('roll_number',),
            },
        ),
        migrations.CreateModel(
            name='SemesterEnrollment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('semester_name', models.CharField(choices=SEMESTER_NAME_CHOICES, max_length=8)),
                ('year', models.CharField(choices=YEAR_CHOICES, max_length=16)),
                ('class_id', models.CharField(db_index=True, max_length=64)),
                ('status', models.CharField(choices=[('active', 'Active'), ('archived', 'Archived')], default='active', max_length=8)),
                ('enrolled_on', models.DateTimeField(default=django.utils.timezone.now)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('faculty', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='student_enrollments', to=settings.AUTH_USER_MODEL)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='semesters', to='academics.studentrecord')),
            ],
            options={
                'verbose_name': 'Semester Enrollment',
                'verbose_name_plural': 'Semester Enrollments',
                'ordering': ('id',),
                'constraints': [
                    models.UniqueConstraint(fields=('student', 'class_id', 'faculty'), name='unique_enrollment_per_class_faculty'),
                ],
            },
        ),
    ]
