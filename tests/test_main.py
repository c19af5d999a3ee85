from grow_automation import main
from grow_automation.domain.controller import AutomationController
from grow_automation.domain.models import Family

from conftest import at, make_controller


def test_one_runner_per_family():
    assert set(main.runners) == {"light", "moisture", "temperature"}
    assert main.runners["light"].device_id == main.settings.light_device_id
    assert main.runners["moisture"].device_id == main.settings.moisture_device_id
    assert main.runners["temperature"].device_id == main.settings.temperature_device_id


def test_default_profiles_load_into_ready_controllers():
    for family in Family:
        stored = dict(main.default_profiles()[family.value])
        ctrl = make_controller(family, **stored)
        assert isinstance(ctrl, AutomationController)
        assert ctrl.ready, family

    light = make_controller(Family.LIGHT, **main.default_profiles()["light"])
    assert light.profile.window.end_label == "7:00 PM"
    assert light.evaluate(at(13)).command is None
