from itertools import count

from accounts.models import User
from academics.models import Department, FacultyProfile

_seq = count(1)

CLASS_2A3 = dict(batch='2023-2027', year='2nd Year', semester=3, section='A')
CLASS_2B3 = dict(batch='2023-2027', year='2nd Year', semester=3, section='B')
CLASS_3A5 = dict(batch='2022-2026', year='3rd Year', semester=5, section='A')


def make_department(code='CSE', name='Computer Science and Engineering'):
    return Department.objects.create(code=code, name=name, short_name=code)


def make_identity(role, department=None, email=None, name=None, **extra):
    n = next(_seq)
    return User.objects.create_identity(
        email=email or f'{role}{n}@college.edu',
        name=name or f'{role.title()} {n}',
        role=role,
        department=department,
        **extra,
    )


def make_hod(department, **extra):
    return make_identity(User.Role.HOD, department=department, **extra)


def make_admin(**extra):
    return make_identity(User.Role.ADMIN, **extra)


def make_faculty(department, **extra):
    user = make_identity(User.Role.FACULTY, department=department, **extra)
    profile = FacultyProfile.objects.create(
        user=user,
        department=department,
        employee_id=f'EMP{user.pk:04d}',
        position='Assistant Professor',
    )
    return user, profile


def class_context(department, batch_year='2023-2027', section='A', semester_name='Sem 3', year='2nd Year'):
    return {
        'department': department.code,
        'batch_year': batch_year,
        'section': section,
        'semester_name': semester_name,
        'year': year,
    }


def student_row(roll, name=None, email=None, **extra):
    row = {
        'name': name or f'Student {roll}',
        'email': email or f'{roll.lower()}@students.college.edu',
        'roll_number': roll,
    }
    row.update(extra)
    return row
