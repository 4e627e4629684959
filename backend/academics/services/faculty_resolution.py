"""Resolve faculty references to a canonical identity.

Callers may hold either an identity id or a faculty-profile id. Rather than
probing both tables, a reference is tagged with its kind and normalized here
before any ledger or enrollment invariant is checked.
"""
from dataclasses import dataclass
from typing import Tuple, Union

from django.contrib.auth import get_user_model

from academics.exceptions import NotFound
from academics.models import FacultyProfile


@dataclass(frozen=True)
class FacultyRef:
    IDENTITY = 'identity'
    PROFILE = 'profile'

    kind: str
    id: int

    @classmethod
    def identity(cls, pk) -> 'FacultyRef':
        return cls(cls.IDENTITY, int(pk))

    @classmethod
    def profile(cls, pk) -> 'FacultyRef':
        return cls(cls.PROFILE, int(pk))

    @classmethod
    def parse(cls, value) -> 'FacultyRef':
        """Parse 'profile:12' / 'identity:7' / {'kind': ..., 'id': ...}; bare ids are identity ids."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(str(value.get('kind') or cls.IDENTITY).lower(), int(value.get('id')))
        text = str(value).strip()
        if ':' in text:
            kind, _, pk = text.partition(':')
            return cls(kind.strip().lower(), int(pk))
        return cls.identity(text)


FacultyLike = Union[FacultyRef, FacultyProfile, int, str, dict, object]


def resolve_faculty(ref: FacultyLike) -> Tuple[object, FacultyProfile]:
    """Return `(identity, profile)` for a faculty reference.

    Accepts a FacultyRef, a FacultyProfile, a faculty identity, or anything
    `FacultyRef.parse` understands. Raises NotFound when the reference does
    not lead to a faculty identity with a profile.
    """
    User = get_user_model()

    if isinstance(ref, FacultyProfile):
        return ref.user, ref
    if isinstance(ref, User):
        user = ref
    else:
        try:
            tagged = FacultyRef.parse(ref)
        except (TypeError, ValueError):
            raise NotFound(f'Invalid faculty reference: {ref!r}')

        if tagged.kind == FacultyRef.PROFILE:
            profile = FacultyProfile.objects.select_related('user', 'department').filter(pk=tagged.id).first()
            if profile is None:
                raise NotFound('Faculty profile not found', faculty=tagged.id)
            return profile.user, profile
        if tagged.kind != FacultyRef.IDENTITY:
            raise NotFound(f'Unknown faculty reference kind: {tagged.kind}')
        user = User.objects.filter(pk=tagged.id).first()
        if user is None:
            raise NotFound('Faculty member not found', faculty=tagged.id)

    if user.role != User.Role.FACULTY:
        raise NotFound('Identity is not a faculty member', faculty=user.pk)
    profile = FacultyProfile.objects.select_related('department').filter(user=user).first()
    if profile is None:
        raise NotFound('Faculty profile not found', faculty=user.pk)
    return user, profile
