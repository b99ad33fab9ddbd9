# Overview: Pytest coverage for collision-probe number generation.

from datetime import datetime

import pytest

from pharmacy_api.models import Patient
from pharmacy_api.services.numbering_service import (
    MAX_ATTEMPTS,
    NumberGenerationError,
    format_number,
    generate_unique_number,
)


class CountingRandom:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    def randrange(self, start, stop):
        self.calls += 1
        return self.value


def test_format_number():
    assert format_number("SALE", 2026, 1234) == "SALE20261234"


def test_year_comes_from_clock(db_session):
    number = generate_unique_number(
        db_session, Patient.patient_number, "PAT",
        rng=CountingRandom(4242), now=datetime(2031, 5, 1),
    )
    assert number == "PAT20314242"


def test_suffix_is_four_digits(db_session):
    for _ in range(20):
        number = generate_unique_number(db_session, Patient.patient_number, "PAT")
        suffix = int(number[len("PAT") + 4:])
        assert 1000 <= suffix <= 9998


def test_gives_up_after_max_attempts(db_session, tenant_a):
    db_session.add(Patient(tenant_id=tenant_a.id, patient_number="PAT20267777", first_name="A", last_name="B"))
    db_session.commit()

    rng = CountingRandom(7777)
    with pytest.raises(NumberGenerationError) as exc:
        generate_unique_number(
            db_session, Patient.patient_number, "PAT", rng=rng, now=datetime(2026, 1, 1),
        )

    assert rng.calls == MAX_ATTEMPTS
    assert exc.value.details == {"prefix": "PAT", "attempts": MAX_ATTEMPTS}


def test_other_year_does_not_collide(db_session, tenant_a):
    db_session.add(Patient(tenant_id=tenant_a.id, patient_number="PAT20267777", first_name="A", last_name="B"))
    db_session.commit()

    number = generate_unique_number(
        db_session, Patient.patient_number, "PAT", rng=CountingRandom(7777), now=datetime(2027, 1, 1),
    )
    assert number == "PAT20277777"
