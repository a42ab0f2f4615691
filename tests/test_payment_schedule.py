import pytest
from pydantic import ValidationError

from atelier.domain.timeline.schedule import PaymentSchedule
from atelier.settings import Settings


def test_terminal_stage_takes_remainder():
    schedule = PaymentSchedule(percentages={"assigned": 33, "fitting": 33, "delivered": 34})

    amounts = {item.stage: item.amount_cents for item in schedule.preview(1001)}

    assert amounts == {"assigned": 330, "fitting": 330, "delivered": 341}
    assert sum(amounts.values()) == 1001


def test_unscheduled_stage_has_no_default():
    schedule = PaymentSchedule(percentages={"delivered": 100})

    assert schedule.requires_payment("dyed") is False
    assert schedule.default_amount("dyed", 5000) is None
    assert schedule.default_amount("delivered", None) is None
    assert schedule.preview(None) == []


def test_schedule_from_settings():
    config = Settings(payment_schedule="Stitched:40, Delivered:60", terminal_stage="delivered", app_env="dev")

    schedule = PaymentSchedule.from_settings(config)

    assert schedule.percentages == {"stitched": 40, "delivered": 60}
    assert schedule.default_amount("delivered", 1000) == 600


def test_schedule_accepts_json():
    config = Settings(payment_schedule='{"assigned": 50, "delivered": 50}', app_env="dev")

    assert config.payment_schedule == {"assigned": 50, "delivered": 50}


@pytest.mark.parametrize("raw", ["assigned", "assigned:0", "assigned:60,delivered:60"])
def test_invalid_schedule_rejected(raw):
    with pytest.raises(ValidationError):
        Settings(payment_schedule=raw, app_env="dev")
