import jwt
import pytest
from fastapi import HTTPException

from clinic_scheduler.auth import jwt_handler
from clinic_scheduler.auth.dependencies import actor_from_token, require_staff
from clinic_scheduler.core import config
from clinic_scheduler.scheduling.coordinator import Actor


def test_token_round_trip_builds_actor() -> None:
    token = jwt_handler.create_access_token(subject='42', role='Doctor')

    assert actor_from_token(token) == Actor(user_id=42, role='doctor')


def test_token_signed_with_other_key_is_rejected() -> None:
    token = jwt.encode({'sub': '42', 'role': 'patient'}, 'another-secret', algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        actor_from_token(token)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


@pytest.mark.parametrize(
    ('claims', 'detail'),
    [
        ({'role': 'patient'}, 'Invalid token subject'),
        ({'sub': 'ana@example.test', 'role': 'patient'}, 'Invalid token subject'),
        ({'sub': '7'}, 'Invalid token role'),
        ({'sub': '7', 'role': 'visitor'}, 'Invalid token role'),
    ],
)
def test_token_claims_are_validated(claims: dict, detail: str) -> None:
    token = jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        actor_from_token(token)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == detail


def test_require_staff_allows_doctors_and_admins() -> None:
    assert require_staff(Actor(user_id=1, role='doctor')).role == 'doctor'
    assert require_staff(Actor(user_id=2, role='center_admin')).role == 'center_admin'


def test_require_staff_rejects_patients() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_staff(Actor(user_id=3, role='patient'))

    assert exception_info.value.status_code == 403
