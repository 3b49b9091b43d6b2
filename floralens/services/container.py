from __future__ import annotations

import logging
from dataclasses import dataclass

from floralens.config import AppConfig
from floralens.services.ai import (
    CapabilityProbe,
    CloudBackend,
    CloudConversationStrategy,
    CloudIdentificationStrategy,
    ConversationService,
    LocalConversationStrategy,
    LocalIdentificationStrategy,
    LocalLanguageModel,
    TransformersLanguageModel,
    VisionClassifier,
    create_cloud_backend,
)
from floralens.services.application.connectivity import ConnectivityMonitor
from floralens.services.application.orchestrator import PlantSessionOrchestrator

logger = logging.getLogger(__name__)

_FROM_CONFIG = object()


@dataclass
class ServiceContainer:
    """Aggregate and manage core backend services."""

    config: AppConfig
    cloud_backend: CloudBackend | None
    local_model: LocalLanguageModel | None
    classifier: VisionClassifier | None
    probe: CapabilityProbe
    connectivity: ConnectivityMonitor
    conversation: ConversationService
    orchestrator: PlantSessionOrchestrator

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        cloud_backend=_FROM_CONFIG,
        local_model=_FROM_CONFIG,
        classifier=_FROM_CONFIG,
        connectivity: ConnectivityMonitor | None = None,
        start_background: bool = True,
    ) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            cloud_backend: Override the backend built from ``CLOUD_PROVIDER``
                (``None`` disables the cloud)
            local_model: Override the on-device language model
            classifier: Override the on-device image classifier
            connectivity: Override the connectivity monitor
            start_background: Start model loaders and connectivity polling
        """
        logger.info("Building ServiceContainer...")

        if cloud_backend is _FROM_CONFIG:
            cloud_backend = create_cloud_backend(
                config.cloud_provider,
                api_key=config.cloud_api_key,
                model=config.cloud_model,
                base_url=config.cloud_base_url or None,
                timeout=config.cloud_timeout,
            )
        if local_model is _FROM_CONFIG:
            local_model = TransformersLanguageModel(
                model_path=config.local_llm_model_path,
                device=config.local_llm_device,
                torch_dtype=config.local_llm_torch_dtype,
                max_tokens=config.local_llm_max_tokens,
                temperature=config.local_llm_temperature,
                enabled=config.local_llm_enabled,
            )
        if classifier is _FROM_CONFIG:
            classifier = VisionClassifier(
                model_name=config.cv_model_type,
                max_results=config.cv_max_results,
                score_threshold=config.cv_confidence_threshold,
                device=config.cv_inference_device,
                weights_path=config.cv_weights_path,
                enabled=config.cv_enabled,
            )
        if connectivity is None:
            connectivity = ConnectivityMonitor(
                initial_online=config.assume_online,
                check_url=config.connectivity_check_url,
                interval=config.connectivity_check_interval,
                timeout=config.connectivity_timeout,
            )

        probe = CapabilityProbe(local_model)
        conversation = ConversationService(
            cloud=CloudConversationStrategy(cloud_backend),
            local=LocalConversationStrategy(local_model),
        )
        orchestrator = PlantSessionOrchestrator(
            cloud_identifier=CloudIdentificationStrategy(cloud_backend),
            local_identifier=LocalIdentificationStrategy(local_model),
            classifier=classifier,
            conversation=conversation,
            probe=probe,
            connectivity=connectivity,
        )

        container = cls(
            config=config,
            cloud_backend=cloud_backend,
            local_model=local_model,
            classifier=classifier,
            probe=probe,
            connectivity=connectivity,
            conversation=conversation,
            orchestrator=orchestrator,
        )
        if start_background:
            container.start_background()

        logger.info(
            "ServiceContainer built (cloud=%s, local=%s, classifier=%s)",
            cloud_backend.name if cloud_backend else "none",
            local_model.name if local_model else "none",
            classifier.model_name if classifier else "none",
        )
        return container

    def start_background(self) -> None:
        """Kick off model loads and connectivity polling on daemon threads."""
        if self.local_model is not None:
            # A finished load changes the probe answer
            self.local_model.start_loading(on_loaded=self.probe.invalidate)
        if self.classifier is not None:
            self.classifier.start_loading()
        self.connectivity.start()

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        try:
            self.orchestrator.shutdown()
            logger.info("✓ Orchestrator stopped")
        except Exception as e:
            logger.warning(f"Failed to stop orchestrator: {e}")
