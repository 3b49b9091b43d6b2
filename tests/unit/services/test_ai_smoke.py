"""
AI layer smoke tests.

Verifies that every public AI service module imports without the optional
heavy dependencies (torch, transformers, provider SDKs) and that the
constructors do not touch the network or load weights.
"""

from __future__ import annotations

import importlib

import pytest

AI_MODULES = [
    "floralens.services.ai.capability_probe",
    "floralens.services.ai.conversation",
    "floralens.services.ai.identification",
    "floralens.services.ai.llm_backends",
    "floralens.services.ai.local_models",
    "floralens.services.ai.vision_classifier",
    "floralens.services.application.connectivity",
    "floralens.services.application.mode_policy",
    "floralens.services.application.orchestrator",
    "floralens.services.container",
]


@pytest.mark.parametrize("module_name", AI_MODULES)
def test_module_imports(module_name: str):
    """Every AI module should import without raising."""
    mod = importlib.import_module(module_name)
    assert mod is not None


def test_barrel_import():
    import floralens.services.ai as ai

    for symbol in ai.__all__:
        assert hasattr(ai, symbol)


class TestLazyConstruction:
    def test_transformers_model_disabled(self):
        from floralens.services.ai.local_models import Availability, TransformersLanguageModel

        model = TransformersLanguageModel(enabled=False)

        assert model.capabilities() is Availability.NO
        assert model.initialize() is False
        assert model.is_loaded is False

    def test_transformers_model_refuses_sessions_until_loaded(self, tmp_path):
        from floralens.domain.exceptions import LocalGenerationError
        from floralens.services.ai.local_models import TransformersLanguageModel

        model = TransformersLanguageModel(model_path=str(tmp_path / "missing"), enabled=True)

        with pytest.raises(LocalGenerationError):
            model.create("You are FloraLens.")

    def test_container_builds_from_config(self, app_config):
        from floralens.services.container import ServiceContainer

        app_config.local_llm_enabled = False
        app_config.cv_enabled = False
        container = ServiceContainer.build(app_config, start_background=False)

        assert container.cloud_backend is None
        assert container.orchestrator.status()["is_local_model_ready"] is False
        container.shutdown()
