from __future__ import annotations

import pytest

from floralens.services.ai.capability_probe import CapabilityProbe
from floralens.services.ai.local_models import Availability


@pytest.mark.parametrize(
    "availability, expected",
    [
        (Availability.READILY, True),
        (Availability.AFTER_DOWNLOAD, False),
        (Availability.NO, False),
    ],
)
def test_only_readily_counts_as_ready(local_model, availability, expected):
    local_model.availability = availability
    assert CapabilityProbe(local_model).probe_local_model() is expected


def test_missing_model_is_not_ready():
    assert CapabilityProbe(None).probe_local_model() is False


def test_query_failure_is_not_ready(local_model):
    local_model.capability_error = RuntimeError("provider crashed")
    assert CapabilityProbe(local_model).probe_local_model() is False


def test_repeated_probes_are_cached(local_model):
    probe = CapabilityProbe(local_model)

    first = probe.probe_local_model()
    second = probe.probe_local_model()

    assert first == second
    assert local_model.capability_calls == 1


def test_invalidate_forces_requery(local_model):
    local_model.availability = Availability.AFTER_DOWNLOAD
    probe = CapabilityProbe(local_model)
    assert probe.probe_local_model() is False

    local_model.availability = Availability.READILY
    assert probe.probe_local_model() is False
    probe.invalidate()

    assert probe.probe_local_model() is True
    assert local_model.capability_calls == 2
